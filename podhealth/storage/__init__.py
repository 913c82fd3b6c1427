"""Storage subsystem — SQLite database, units of work, value encoding."""

from .database import Database
from .encoder import ValueEncoder, encoder
from .models import RuntimeSettings, ServerHealthConnectionInfo, ServerHealthMetric, SessionLogEntry
from .session import ConnectionTracker, Session
