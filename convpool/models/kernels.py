import numpy as np

from convpool.errors import ConfigurationError, check_batch_size, check_shape
from convpool.utils.optimizers import SGD

TIE_MODES = ('first', 'duplicate')


class ConvolutionKernel:
    """Valid (unpadded, stride 1) cross-correlation with bias and activation"""
    def __init__(self, image_size, channel, n_kernel, kernel_size, activation):
        """
        Args:
            image_size: (H, W) of the input maps
            channel: Number of input channels C
            n_kernel: Number of kernels K
            kernel_size: (kh, kw)
            activation: Elementwise Activation strategy
        """
        self.image_size = tuple(image_size)
        self.channel = channel
        self.n_kernel = n_kernel
        self.kernel_size = tuple(kernel_size)
        self.convolved_size = (self.image_size[0] - self.kernel_size[0] + 1,
                               self.image_size[1] - self.kernel_size[1] + 1)
        self.activation = activation

    def forward(self, x, W, b):
        """
        Forward pass for one sample

        Args:
            x: Input, shape (C, H, W)
            W: Weights, shape (K, C, kh, kw)
            b: Bias, shape (K,)

        Returns:
            pre_activation: shape (K, Hc, Wc)
            activation: shape (K, Hc, Wc)
        """
        check_shape('input', x, (self.channel,) + self.image_size)

        kh, kw = self.kernel_size
        out_height, out_width = self.convolved_size

        pre = np.zeros((self.n_kernel, out_height, out_width))

        for k in range(self.n_kernel):
            for i in range(out_height):
                for j in range(out_width):
                    # no kernel flip
                    window = x[:, i:i + kh, j:j + kw]
                    pre[k, i, j] = np.sum(W[k] * window) + b[k]

        return pre, self.activation.activate(pre)

    def backward(self, X, act, dZ, params, minibatch_size, learning_rate):
        """
        Backward pass over a minibatch, including the SGD update

        Args:
            X: Inputs of the forward passes, shape (N, C, H, W)
            act: Cached post-activation maps, shape (N, K, Hc, Wc)
            dZ: Gradient w.r.t. the activated maps, shape (N, K, Hc, Wc)
            params: Dict with 'W' and 'b', updated in place
            minibatch_size: N
            learning_rate: SGD step size

        Returns:
            dX: Gradient w.r.t. the input, shape (N, C, H, W)
            grads: Dict with the accumulated (summed) gradients of 'W' and 'b'
        """
        self._check_backward_shapes(X, act, dZ, minibatch_size)

        kh, kw = self.kernel_size
        out_height, out_width = self.convolved_size

        # local gradient, derivative evaluated at the post-activation value
        d = dZ * self.activation.derivative(act)

        grad_b = np.sum(d, axis=(0, 2, 3))
        grad_W = np.zeros_like(params['W'])

        for n in range(minibatch_size):
            for k in range(self.n_kernel):
                for i in range(out_height):
                    for j in range(out_width):
                        grad_W[k] += d[n, k, i, j] * X[n, :, i:i + kh, j:j + kw]

        grads = {'W': grad_W, 'b': grad_b}
        SGD(learning_rate).update(params, grads, minibatch_size)

        # the input gradient uses the already updated weights
        dX = self.input_gradient(d, params['W'], minibatch_size)

        return dX, grads

    def input_gradient(self, d, W, minibatch_size):
        """
        Full correlation of the local gradient with the weights

        dX[n, c, i, j] = sum_{k, s, t} d[n, k, i-(kh-1)-s, j-(kw-1)-t] * W[k, c, s, t]
        Terms indexing outside the convolved map contribute zero.
        """
        kh, kw = self.kernel_size
        height, width = self.image_size
        out_height, out_width = self.convolved_size

        dX = np.zeros((minibatch_size, self.channel, height, width))

        for n in range(minibatch_size):
            for i in range(height):
                for j in range(width):
                    for s in range(kh):
                        p = i - (kh - 1) - s
                        if p < 0 or p >= out_height:
                            continue
                        for t in range(kw):
                            q = j - (kw - 1) - t
                            if q < 0 or q >= out_width:
                                continue
                            # sum over k for every channel c
                            dX[n, :, i, j] += d[n, :, p, q] @ W[:, :, s, t]

        return dX

    def _check_backward_shapes(self, X, act, dZ, minibatch_size):
        check_batch_size(minibatch_size)
        maps = (minibatch_size, self.n_kernel) + self.convolved_size
        check_shape('input batch', X, (minibatch_size, self.channel) + self.image_size)
        check_shape('activation', act, maps)
        check_shape('convolution output gradient', dZ, maps)


class PoolingKernel:
    """
    Non-overlapping max pooling, stride equal to the pool size

    tie_mode selects how the backward pass treats equal maxima inside a window:
        'first': route the gradient to the first maximum in row-major order
        'duplicate': route the gradient to every position equal to the maximum
    """
    def __init__(self, convolved_size, n_kernel, pool_size, tie_mode='first'):
        if tie_mode not in TIE_MODES:
            raise ConfigurationError(f"Unsupported tie mode: {tie_mode}")

        self.convolved_size = tuple(convolved_size)
        self.n_kernel = n_kernel
        self.pool_size = tuple(pool_size)
        self.pooled_size = (self.convolved_size[0] // self.pool_size[0],
                            self.convolved_size[1] // self.pool_size[1])
        self.tie_mode = tie_mode

    def downsample(self, x):
        """
        Max pooling for one sample

        Args:
            x: Activated maps, shape (K, Hc, Wc)

        Returns:
            y: Pooled maps, shape (K, Hp, Wp)
            argmax: Winning (s, t) offset inside each window, shape (K, Hp, Wp, 2)
        """
        check_shape('pooling input', x, (self.n_kernel,) + self.convolved_size)

        ph, pw = self.pool_size
        out_height, out_width = self.pooled_size

        y = np.zeros((self.n_kernel, out_height, out_width))
        argmax = np.zeros((self.n_kernel, out_height, out_width, 2), dtype=int)

        for k in range(self.n_kernel):
            for i in range(out_height):
                for j in range(out_width):
                    window = x[k, ph * i:ph * i + ph, pw * j:pw * j + pw]

                    s, t = self._scan_max(window)
                    y[k, i, j] = window[s, t]
                    argmax[k, i, j] = [s, t]

        return y, argmax

    @staticmethod
    def _scan_max(window):
        """Row-major scan from the first element, updating only on strict greater-than"""
        best_s, best_t = 0, 0
        best = window[0, 0]
        for s in range(window.shape[0]):
            for t in range(window.shape[1]):
                # ties and NaN never replace the current maximum
                if window[s, t] > best:
                    best = window[s, t]
                    best_s, best_t = s, t
        return best_s, best_t

    def upsample(self, x, y, dY, minibatch_size, argmax=None):
        """
        Route the pooled gradient back to the convolved resolution

        Args:
            x: Activated maps of the forward passes, shape (N, K, Hc, Wc)
            y: Pooled maps, shape (N, K, Hp, Wp)
            dY: Gradient w.r.t. the pooled maps, shape (N, K, Hp, Wp)
            minibatch_size: N
            argmax: Offsets returned by downsample, shape (N, K, Hp, Wp, 2);
                recomputed from x when None. Ignored in 'duplicate' mode.

        Returns:
            dX: shape (N, K, Hc, Wc), zero everywhere except the selected maxima
        """
        check_batch_size(minibatch_size)
        pooled = (minibatch_size, self.n_kernel) + self.pooled_size
        check_shape('pooling input batch', x, (minibatch_size, self.n_kernel) + self.convolved_size)
        check_shape('pooled output', y, pooled)
        check_shape('pooled output gradient', dY, pooled)

        if self.tie_mode == 'duplicate':
            return self._upsample_duplicate(x, y, dY, minibatch_size)

        if argmax is None:
            argmax = np.stack([self.downsample(x[n])[1] for n in range(minibatch_size)])
        check_shape('argmax', argmax, pooled + (2,))

        ph, pw = self.pool_size
        out_height, out_width = self.pooled_size
        dX = np.zeros_like(x, dtype=np.float64)

        for n in range(minibatch_size):
            for k in range(self.n_kernel):
                for i in range(out_height):
                    for j in range(out_width):
                        s, t = argmax[n, k, i, j]
                        dX[n, k, ph * i + s, pw * j + t] = dY[n, k, i, j]

        return dX

    def _upsample_duplicate(self, x, y, dY, minibatch_size):
        ph, pw = self.pool_size
        out_height, out_width = self.pooled_size
        dX = np.zeros_like(x, dtype=np.float64)

        for n in range(minibatch_size):
            for k in range(self.n_kernel):
                for i in range(out_height):
                    for j in range(out_width):
                        window = x[n, k, ph * i:ph * i + ph, pw * j:pw * j + pw]
                        # every tied position receives the full gradient
                        mask = window == y[n, k, i, j]
                        dX[n, k, ph * i:ph * i + ph, pw * j:pw * j + pw][mask] = dY[n, k, i, j]

        return dX
