"""pyresq - Async client and request lifecycle orchestration for rescue requests."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyresq")
except PackageNotFoundError:
    __version__ = "0+local"
from pyresq.client import ResqClient
from pyresq.config import ResqConfig
from pyresq.controller import LifecyclePhase, RequestLifecycleController
from pyresq.exceptions import (
    ResqApiError,
    ResqConfigError,
    ResqError,
    ResqPositionError,
    ResqStreamError,
    ResqTransportError,
    ResqValidationError,
)
from pyresq.models import (
    CanonicalStatus,
    Coordinate,
    ProofImage,
    RescueRequest,
    RescueVehicle,
    Route,
    VehiclePosition,
    classify,
)
from pyresq.pin import PinResolver, Viewport
from pyresq.positioning import PositionFix, PositionPolicy, resolve_position, watch_positions
from pyresq.preferences import JsonFilePreferences, PreferenceStore
from pyresq.route import RouteProjector
from pyresq.scheduler import ResetScheduler
from pyresq.state import RequestSession
from pyresq.streams import LocationStreamBinding, StatusStreamBinding

__all__ = [
    "__version__",
    "CanonicalStatus",
    "Coordinate",
    "JsonFilePreferences",
    "LifecyclePhase",
    "LocationStreamBinding",
    "PinResolver",
    "PositionFix",
    "PositionPolicy",
    "PreferenceStore",
    "ProofImage",
    "RequestLifecycleController",
    "RequestSession",
    "RescueRequest",
    "RescueVehicle",
    "ResetScheduler",
    "ResqApiError",
    "ResqClient",
    "ResqConfig",
    "ResqConfigError",
    "ResqError",
    "ResqPositionError",
    "ResqStreamError",
    "ResqTransportError",
    "ResqValidationError",
    "Route",
    "RouteProjector",
    "StatusStreamBinding",
    "VehiclePosition",
    "Viewport",
    "classify",
    "resolve_position",
    "watch_positions",
]
