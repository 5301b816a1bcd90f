from .capability import AdapterCapability, probe
from .facade import AdapterFacade, bind
from .mock import MockAdapter

__all__ = ["AdapterCapability", "AdapterFacade", "MockAdapter", "bind", "probe"]
