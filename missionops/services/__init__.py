from .store_client import MissionStoreClient, StoreResponse
from .repository import DeploymentRepository, MissionSession
from .lifecycle import ALLOWED_TRANSITIONS, LifecycleController, next_allowed
from .day_ledger import DayDeletion, DayLedger, ledger_days, range_days
from .log_ledger import LogLedger
from .batch import BatchResult, PARALLEL, SEQUENTIAL, run_batch
from .pricing import PricingEngine, day_totals, fleet_spend, get_total_cost, technician_totals
from .invoices import InvoiceIssuer
from .crew import CrewRoster
