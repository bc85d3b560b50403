from .deployments import (
    DailyLog,
    Deployment,
    DeploymentCreate,
    DeploymentFile,
    DeploymentStatus,
    DeploymentType,
    MonitoringMember,
    to_day,
)
from .personnel import Personnel, PersonnelRole, PersonnelStatus, ASSIGNABLE_STATUSES
from .pricing import PricingSnapshot, recommend
from .invoices import AssignmentKind, DispatchResult, InvoiceLink, SentInvoice
