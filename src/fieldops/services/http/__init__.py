"""Backend HTTP access."""

from .gateway import HttpGateway, classify_response, decode_json
from .retry import retry_read

__all__ = ["HttpGateway", "classify_response", "decode_json", "retry_read"]
