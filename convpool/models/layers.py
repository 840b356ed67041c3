from collections import namedtuple

import numpy as np

from convpool.errors import ConfigurationError, ShapeError, check_batch_size, check_shape
from convpool.models.kernels import ConvolutionKernel, PoolingKernel
from convpool.utils.activations import get_activation
from convpool.utils.initializers import WeightInitializer, make_rng
from convpool.utils.optimizers import SGD

ForwardResult = namedtuple('ForwardResult', ['output', 'pre_activation', 'activation', 'argmax'])


class Layer:
    """Base class of trainable layers"""
    def __init__(self):
        self.params = {}
        self.grads = {}

    def forward(self, x):
        raise NotImplementedError

    def backward(self, *args, **kwargs):
        raise NotImplementedError

    def get_params(self):
        return {key: value.copy() for key, value in self.params.items()}

    def set_params(self, params):
        for key in self.params:
            check_shape(key, params[key], self.params[key].shape)
            self.params[key] = np.array(params[key], dtype=np.float64)


def _pair(value, name):
    try:
        pair = tuple(int(v) for v in value)
    except TypeError:
        raise ConfigurationError(f"{name} must be a pair of integers, got {value!r}") from None
    if len(pair) != 2 or min(pair) <= 0:
        raise ConfigurationError(f"{name} must be a pair of positive integers, got {value!r}")
    return pair


def _positive(value, name):
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}") from None
    if number <= 0:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
    return number


class ConvolutionPoolingLayer(Layer):
    """
    Convolution followed by non-overlapping max pooling

    The weights W (K, C, kh, kw) and bias b (K,) are the only persistent state.
    backward() applies an SGD step to them in place, so calls on one layer
    instance must not run concurrently.
    """
    def __init__(self, image_size, channel, n_kernel, kernel_size, pool_size,
                 convolved_size=None, pooled_size=None, rng=None, activation='relu',
                 tie_mode='first'):
        """
        Args:
            image_size: (H, W) of the input
            channel: Number of input channels
            n_kernel: Number of kernels (output maps)
            kernel_size: (kh, kw)
            pool_size: (ph, pw), must divide the convolved size exactly
            convolved_size: Optional, checked against (H - kh + 1, W - kw + 1)
            pooled_size: Optional, checked against convolved_size / pool_size
            rng: numpy Generator used for initialization; seeded with 1234 when None
            activation: Activation name or instance, default 'relu'
            tie_mode: 'first' or 'duplicate', see PoolingKernel
        """
        super().__init__()

        self.image_size = _pair(image_size, 'image_size')
        self.kernel_size = _pair(kernel_size, 'kernel_size')
        self.pool_size = _pair(pool_size, 'pool_size')
        self.channel = _positive(channel, 'channel')
        self.n_kernel = _positive(n_kernel, 'n_kernel')

        if self.kernel_size[0] > self.image_size[0] or self.kernel_size[1] > self.image_size[1]:
            raise ConfigurationError(f"kernel_size {self.kernel_size} exceeds image_size {self.image_size}")

        self.convolved_size = (self.image_size[0] - self.kernel_size[0] + 1,
                               self.image_size[1] - self.kernel_size[1] + 1)
        if self.convolved_size[0] % self.pool_size[0] or self.convolved_size[1] % self.pool_size[1]:
            raise ConfigurationError(f"pool_size {self.pool_size} does not evenly divide "
                                     f"convolved size {self.convolved_size}")
        self.pooled_size = (self.convolved_size[0] // self.pool_size[0],
                            self.convolved_size[1] // self.pool_size[1])

        if convolved_size is not None and tuple(convolved_size) != self.convolved_size:
            raise ConfigurationError(f"convolved_size {tuple(convolved_size)} does not match "
                                     f"derived {self.convolved_size}")
        if pooled_size is not None and tuple(pooled_size) != self.pooled_size:
            raise ConfigurationError(f"pooled_size {tuple(pooled_size)} does not match "
                                     f"derived {self.pooled_size}")

        try:
            self.activation = get_activation(activation)
        except ValueError as e:
            raise ConfigurationError(str(e)) from None
        if not self.activation.elementwise:
            raise ConfigurationError(f"{self.activation.name} cannot be used inside a convolution layer")

        self.rng = make_rng() if rng is None else rng

        self.params['W'], self.params['b'] = WeightInitializer(self.rng).conv_weights(
            self.n_kernel, self.channel, self.kernel_size, self.pool_size)

        self.conv = ConvolutionKernel(self.image_size, self.channel, self.n_kernel,
                                      self.kernel_size, self.activation)
        self.pool = PoolingKernel(self.convolved_size, self.n_kernel, self.pool_size, tie_mode)

    @property
    def tie_mode(self):
        return self.pool.tie_mode

    @property
    def output_shape(self):
        return (self.n_kernel,) + self.pooled_size

    def forward(self, x):
        """
        Forward pass for one sample

        Args:
            x: Input, shape (C, H, W)

        Returns:
            ForwardResult with output (K, Hp, Wp), pre_activation and activation
            (K, Hc, Wc) and the pooling argmax (K, Hp, Wp, 2). Keep it unchanged
            until the matching backward call.
        """
        pre, act = self.conv.forward(x, self.params['W'], self.params['b'])
        y, argmax = self.pool.downsample(act)
        return ForwardResult(y, pre, act, argmax)

    def forward_batch(self, X):
        """
        Forward pass over a minibatch, shape (N, C, H, W)

        Returns:
            ForwardResult whose fields carry a leading batch axis
        """
        if len(X) < 1:
            raise ShapeError("input batch is empty")
        results = [self.forward(x) for x in X]
        return ForwardResult(*(np.stack(field) for field in zip(*results)))

    def backward(self, X, activation, pooled, dY, minibatch_size, learning_rate, argmax=None):
        """
        Backward pass: pooling first, then convolution with the SGD update

        Args:
            X: Inputs of the forward passes, shape (N, C, H, W)
            activation: Cached activated maps, shape (N, K, Hc, Wc)
            pooled: Cached pooled output, shape (N, K, Hp, Wp)
            dY: Gradient w.r.t. the pooled output, shape (N, K, Hp, Wp)
            minibatch_size: N, gradients are averaged over it
            learning_rate: SGD step size
            argmax: Optional cached pooling offsets, shape (N, K, Hp, Wp, 2)

        Returns:
            Gradient w.r.t. the input, shape (N, C, H, W)
        """
        # validate everything before the pooling pass touches anything
        check_batch_size(minibatch_size)
        check_shape('input batch', X, (minibatch_size, self.channel) + self.image_size)

        dZ = self.pool.upsample(activation, pooled, dY, minibatch_size, argmax)
        dX, self.grads = self.conv.backward(X, activation, dZ, self.params, minibatch_size, learning_rate)

        return dX

    def backward_from(self, X, result, dY, learning_rate):
        """backward() taking the ForwardResult returned by forward_batch"""
        return self.backward(X, result.activation, result.output, dY, len(X), learning_rate,
                             argmax=result.argmax)


class FullyConnected(Layer):
    """Fully connected (linear) layer"""
    def __init__(self, input_dim, output_dim, rng=None):
        super().__init__()

        self.params['W'], self.params['b'] = WeightInitializer(rng).dense_weights(input_dim, output_dim)

        # input cached for the backward pass
        self.x = None

    def forward(self, x):
        """
        Args:
            x: shape (batch_size, input_dim)

        Returns:
            shape (batch_size, output_dim)
        """
        self.x = x
        return np.dot(x, self.params['W']) + self.params['b']

    def backward(self, dout, learning_rate=None):
        """
        Args:
            dout: Output gradient, shape (batch_size, output_dim)
            learning_rate: When given, apply an SGD step averaged over the batch

        Returns:
            Input gradient, shape (batch_size, input_dim), computed with the
            weights before the update
        """
        self.grads['W'] = np.dot(self.x.T, dout)
        self.grads['b'] = np.sum(dout, axis=0)

        dx = np.dot(dout, self.params['W'].T)

        if learning_rate is not None:
            SGD(learning_rate).update(self.params, self.grads, dout.shape[0])

        return dx
