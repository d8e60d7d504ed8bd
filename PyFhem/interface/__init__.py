from PyFhem.interface.interface import Fhem

__all__ = ["Fhem"]
