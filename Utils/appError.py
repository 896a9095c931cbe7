class AppError(Exception):
    def __init__(self, message: str, status_code: int):
        """
        Custom exception class for application errors.

        Args:
            message (str): The error message.
            status_code (int): The HTTP status code associated with the error.
        """
        super().__init__(message)

        self.status_code = status_code
        self.status = "fail" if str(status_code).startswith("4") else "error"
        self.is_operational = True


class ValidationError(AppError):
    """Bad cart / variant / checkout input. No state change."""
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message, status_code)


class EmptyCartError(ValidationError):
    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message, 400)


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, 404)


class SignatureError(AppError):
    """Webhook payload could not be authenticated."""
    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message, 400)


class NotConfiguredError(AppError):
    """Provider or mail credentials are missing. Raised before any external call."""
    def __init__(self, message: str):
        super().__init__(message, 500)


class PaymentProviderError(AppError):
    """Provider rejected the request or could not be reached.

    ``provider_message`` keeps the provider's raw text for logs and the client.
    """
    def __init__(self, message: str, provider: str = "", status_code: int = 502):
        super().__init__(message, status_code)
        self.provider = provider
        self.provider_message = message


class PersistenceError(AppError):
    def __init__(self, message: str):
        super().__init__(message, 500)


class DuplicateOrderError(PersistenceError):
    """An order already holds this payment reference."""
    def __init__(self, message: str):
        AppError.__init__(self, message, 409)


class NotificationError(AppError):
    def __init__(self, message: str):
        super().__init__(message, 500)
