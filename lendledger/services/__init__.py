"""Service modules"""
from .ledger_service import LedgerService
from .replay import ScenarioRunner, StepOutcome, load_script, run_scenario

__all__ = ["LedgerService", "ScenarioRunner", "StepOutcome", "load_script", "run_scenario"]
