from taskbridge.control.signal_handler import ControlSignalHandler

__all__ = ["ControlSignalHandler"]
