from .lease import Lease, LastReservedIP

__all__ = ["Lease", "LastReservedIP"]
