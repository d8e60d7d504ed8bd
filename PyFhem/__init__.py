"""Client for executing commands, Perl code and device functions on FHEM via FHEMWEB."""

from PyFhem.config import FhemConfig, TransportOptions, load_fhem_config
from PyFhem.exceptions import (
    ErrorKind,
    FhemConfigurationError,
    FhemCredentialsException,
    FhemException,
    FhemRemoteError,
    FhemTransportError,
)
from PyFhem.interface import Fhem

__version__ = "0.1.0"

__all__ = [
    "ErrorKind",
    "Fhem",
    "FhemConfig",
    "FhemConfigurationError",
    "FhemCredentialsException",
    "FhemException",
    "FhemRemoteError",
    "FhemTransportError",
    "TransportOptions",
    "load_fhem_config",
]
