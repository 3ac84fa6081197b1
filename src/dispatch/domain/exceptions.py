"""
Dispatch Domain Exceptions
"""
from uuid import UUID


class DispatchError(Exception):
    """Base exception for dispatch pipeline errors."""
    pass


class DeliveryError(DispatchError):
    """Raised by the delivery gateway when the provider rejects a send or is unreachable.

    The gateway never retries; the engine records the failure and moves on.
    """

    def __init__(self, error_code: str, error_message: str, status_code: int | None = None) -> None:
        self.error_code = error_code
        self.error_message = error_message
        self.status_code = status_code
        super().__init__(f"Delivery failed [{error_code}]: {error_message}")


class CandidateFetchError(DispatchError):
    """Raised when the initial candidate set cannot be loaded (run-fatal)."""
    pass


class MissingParameterError(DispatchError):
    """Raised when a required trigger parameter is absent."""

    def __init__(self, parameter: str) -> None:
        self.parameter = parameter
        super().__init__(f"{parameter} is required")


class CampaignNotFoundError(DispatchError):
    def __init__(self, campaign_id: UUID) -> None:
        self.campaign_id = campaign_id
        super().__init__(f"Campaign not found: {campaign_id}")


class CampaignStateError(DispatchError):
    """Raised when launching a campaign that is already sending or completed."""

    def __init__(self, campaign_id: UUID, status: str) -> None:
        self.campaign_id = campaign_id
        self.status = status
        super().__init__(f"Campaign {campaign_id} cannot be launched from status '{status}'")


class AppointmentNotFoundError(DispatchError):
    def __init__(self, appointment_id: UUID) -> None:
        self.appointment_id = appointment_id
        super().__init__(f"Appointment not found: {appointment_id}")


class MissingCredentialsError(DispatchError):
    """Raised by manual triggers and campaign launches when the clinic has no provider API key."""

    def __init__(self, clinic_id: UUID) -> None:
        self.clinic_id = clinic_id
        super().__init__("Clinic has not configured WhatsApp (API key missing)")
