"""Exception hierarchy for the session controller."""


class ControllerError(Exception):
    """Base class for controller errors."""


class SetupError(ControllerError):
    """A session could not be established. Fatal to one establish attempt."""


class ArbitrationLostError(SetupError):
    """The switch elected another controller as primary."""


class P4RuntimeClientError(ControllerError):
    """A P4Runtime call failed or referenced an unknown P4Info entity."""


class DigestDecodeError(ControllerError):
    """A digest entry does not have the expected layout."""


class RouteConfigError(ControllerError):
    """A route file could not be read or validated."""
