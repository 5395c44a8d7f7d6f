"""Exception types raised while acquiring and aggregating snapshot metrics."""

from typing import Dict, Optional


class KopiaExporterError(Exception):
    """Base class for all exporter errors."""


class AcquisitionError(KopiaExporterError):
    """An acquisition attempt failed and produced no metrics."""


class CommandTimeout(AcquisitionError):
    """The kopia command did not finish within its deadline."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"kopia command timeout after {timeout:g} seconds")


class ProcessFailed(AcquisitionError):
    """The kopia command could not be started or exited non-zero."""

    def __init__(self, returncode: Optional[int], stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        if returncode is None:
            message = f"kopia command could not be started: {stderr}"
        else:
            message = f"kopia command failed with exit code {returncode}"
            if stderr:
                message += f"\nstderr: {stderr}"
        super().__init__(message)


class MalformedDocument(AcquisitionError):
    """The command output is not a well-formed JSON array."""


class NoSnapshotData(AcquisitionError):
    """Aggregation was requested before any listing was parsed."""


class MalformedRecord(KopiaExporterError):
    """A single snapshot entry could not be decoded."""


class InvalidSourceField(KopiaExporterError):
    """A source user name or host contains characters outside the whitelist.

    ``fields`` maps each offending field (``user``, ``host``) to its raw
    value; ``field`` and ``value`` name the first of them.
    """

    def __init__(self, fields: Dict[str, str]):
        self.fields = dict(fields)
        self.field, self.value = next(iter(self.fields.items()))
        details = ", ".join(f"{field} {value!r}" for field, value in self.fields.items())
        super().__init__(f"invalid {details} in snapshot source")


class BindError(KopiaExporterError):
    """The HTTP listener could not bind its address."""
