"""Built-in resource types; importing this package registers them."""

from . import appmesh, lightsail, transfer, waf

__all__ = ["appmesh", "lightsail", "transfer", "waf"]
