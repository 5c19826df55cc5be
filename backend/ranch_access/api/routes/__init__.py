from . import invitation_code, member

__all__ = [
    "invitation_code",
    "member",
]
