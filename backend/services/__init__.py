"""Services package."""
from services.result_policy import Principal, Reply, allowed_methods

__all__ = ["Principal", "Reply", "allowed_methods"]
