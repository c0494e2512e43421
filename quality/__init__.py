from .assess import compute_confidence

__all__ = ["compute_confidence"]
