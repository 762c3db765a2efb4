"""Alert trigger, cooldown and cron scheduling engine."""

from pricewatch.engine.cooldown import CooldownManager
from pricewatch.engine.cron import CronScheduler, build_cron_expression, compute_next_trigger
from pricewatch.engine.orchestrator import AlertEngine
from pricewatch.engine.trigger import TriggerEvaluator

__all__ = [
    "AlertEngine",
    "CooldownManager",
    "CronScheduler",
    "TriggerEvaluator",
    "build_cron_expression",
    "compute_next_trigger",
]
