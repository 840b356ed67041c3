import numpy as np

DEFAULT_SEED = 1234


def make_rng(seed=DEFAULT_SEED):
    """Create a new seeded random generator owned by the caller"""
    return np.random.default_rng(seed)


class WeightInitializer:
    """
    Fan-in/fan-out scaled uniform initialization

    Weights are drawn from U(-bound, bound) with bound = sqrt(6 / (fan_in + fan_out)),
    biases start at zero.
    """
    def __init__(self, rng=None):
        """
        Args:
            rng: numpy Generator; a generator seeded with DEFAULT_SEED is created when None
        """
        self.rng = make_rng() if rng is None else rng

    @staticmethod
    def bound(fan_in, fan_out):
        return np.sqrt(6. / (fan_in + fan_out))

    def uniform(self, shape, fan_in, fan_out):
        w = self.bound(fan_in, fan_out)
        return self.rng.uniform(-w, w, size=shape)

    def conv_weights(self, n_kernel, channel, kernel_size, pool_size):
        """
        Initialize a convolution-pooling layer

        Args:
            n_kernel: Number of kernels K
            channel: Number of input channels C
            kernel_size: (kh, kw)
            pool_size: (ph, pw); fan_out accounts for the pooling reduction

        Returns:
            W: shape (K, C, kh, kw)
            b: shape (K,), zeros
        """
        kh, kw = kernel_size
        ph, pw = pool_size
        fan_in = channel * kh * kw
        # integer division of the pooling reduction
        fan_out = n_kernel * kh * kw // (ph * pw)
        W = self.uniform((n_kernel, channel, kh, kw), fan_in, fan_out)
        b = np.zeros(n_kernel)
        return W, b

    def dense_weights(self, input_dim, output_dim):
        W = self.uniform((input_dim, output_dim), input_dim, output_dim)
        b = np.zeros(output_dim)
        return W, b
