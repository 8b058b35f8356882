"""Custom exceptions for serial link, negotiation and relay operations."""


class SerialConError(Exception):
    """Common base exception for all serialcon errors."""
    pass


class ConfigurationError(SerialConError):
    """Exception for invalid link settings (baud rate, parity, encoding, ...)."""
    pass


class SerialCommunicationError(SerialConError):
    """Base exception for serial communication errors.

    Raised when the serial port cannot be opened, read from or written to,
    or when any unexpected I/O failure occurs on the link.
    """
    pass


class LinkOpenError(SerialCommunicationError):
    """Exception for a serial port that could not be opened.

    Attributes:
        port: The port identifier that failed to open.
        baud_rate: The baud rate that was requested.
    """

    def __init__(self, message: str, *, port: str, baud_rate: int) -> None:
        super().__init__(message)
        self.port = port
        self.baud_rate = baud_rate


class LinkReadError(SerialCommunicationError):
    """Exception for a read failure that is not a timeout.

    A timeout is never an error: it simply means no data arrived.  This is
    raised when the device disappears or the driver reports an I/O error.
    """
    pass


class LinkWriteError(SerialCommunicationError):
    """Exception for write failures, including short writes."""
    pass


class SessionLogError(SerialConError):
    """Exception for session log errors.

    Raised when the log directory cannot be created, the log file cannot be
    opened, or a write to it fails.  The session does not start (or stops)
    when this is raised.
    """
    pass
