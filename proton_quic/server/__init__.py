from .admission import AdmissionBusy, AdmissionControl, Lease
from .server import ConnectionOutcome, ProtonServer
