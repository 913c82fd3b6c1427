"""Health subsystem — clock alignment, collection, cycle execution, session reaping, scheduler."""

from .clock import time_until_next_minute
from .collector import SystemResources, perform_health_checks
from .cycle import CycleExecutor
from .models import CycleReport, HealthCheckResult, StepOutcome, StepStatus
from .reaper import SessionReaper
from .scheduler import HealthCheckManager, ScheduleState
