from .auth_gate import AuthGate

__all__ = ["AuthGate"]
