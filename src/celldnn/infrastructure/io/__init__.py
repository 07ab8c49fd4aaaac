from ._parameter_file import load_tensors, save_tensors

__all__ = [load_tensors.__name__, save_tensors.__name__]
