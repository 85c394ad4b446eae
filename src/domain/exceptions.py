"""
Domain Exceptions - Failure taxonomy for the imaging order workflow.

Every command either completes or raises one of these. Callers catch
ImagingWorkflowError to surface a rejected action.
"""


class ImagingWorkflowError(Exception):
    """Base class for all workflow failures."""


class ReferentialIntegrityError(ImagingWorkflowError):
    """An order or image points at a patient/order that does not exist."""


class IdentifierCollisionError(ImagingWorkflowError):
    """A generated identifier clashed with an existing record."""


class OutboundWriteError(ImagingWorkflowError):
    """
    The outbound HL7 file could not be written.

    The order record already exists when this is raised; the order is
    left in the SEND_FAILED state until it is resent.
    """

    def __init__(self, order_id: str, reason: str):
        super().__init__(f"Could not write outbound message for {order_id}: {reason}")
        self.order_id = order_id
        self.reason = reason


class AuditAppendError(ImagingWorkflowError):
    """The audit log could not persist an event. Fatal to the command."""


class WatcherSetupError(ImagingWorkflowError):
    """A directory watch could not be established."""
