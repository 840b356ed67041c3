import numpy as np


class ShapeError(ValueError):
    """A tensor handed to a layer disagrees with the layer's configured dimensions"""


class ConfigurationError(ValueError):
    """Invalid layer configuration, detected at construction time"""


def check_shape(name, array, expected):
    """
    Validate the shape of a tensor

    Args:
        name: Name of the tensor, used in the error message
        array: Array to validate
        expected: Expected shape tuple

    Raises:
        ShapeError: If the shape of array differs from expected
    """
    shape = getattr(array, 'shape', None)
    if shape is None or tuple(shape) != tuple(expected):
        raise ShapeError(f"{name} has shape {shape}, expected {tuple(expected)}")


def check_batch_size(minibatch_size):
    """Raise ShapeError unless minibatch_size is a positive integer"""
    if not isinstance(minibatch_size, (int, np.integer)) or minibatch_size < 1:
        raise ShapeError(f"minibatch size must be a positive integer, got {minibatch_size!r}")
