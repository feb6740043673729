from .tenant import Tenant  # noqa: F401
from .job_run import JobRun  # noqa: F401
from .retention import RetentionPolicy, RetentionRun  # noqa: F401
from .leave import (  # noqa: F401
    Employee, LeavePolicy, LeaveBalance, LeaveAccrualRun, LeaveRequest, LeaveApproval
)
from .payroll import (  # noqa: F401
    PayrollPeriod, PayrollInput, PayrollAdjustment, PayrollResult, Payslip, JournalExport
)
from .performance import (  # noqa: F401
    Goal, GoalComment, Feedback, ReviewCycle, ReviewTask, ReviewResponse, CheckIn, ImprovementPlan
)
from .gdpr import DsarExport, AnonymizationJob  # noqa: F401
from .activity import AuditEvent, AccessLog, Notification  # noqa: F401
