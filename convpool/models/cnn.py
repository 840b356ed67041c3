import numpy as np

from convpool.errors import ConfigurationError
from convpool.models.layers import ConvolutionPoolingLayer, FullyConnected
from convpool.utils.activations import get_activation
from convpool.utils.initializers import make_rng


class ConvPoolNet:
    """Stack of convolution-pooling layers followed by a softmax classifier"""
    def __init__(self, input_shape=(1, 12, 12), n_kernels=(4,), kernel_sizes=((3, 3),),
                 pool_sizes=((2, 2),), num_classes=2, activation='relu', rng=None, tie_mode='first'):
        """
        Args:
            input_shape: (C, H, W)
            n_kernels: Number of kernels of every conv layer
            kernel_sizes: Kernel size of every conv layer
            pool_sizes: Pool size of every conv layer
            num_classes: Number of output classes
            activation: Activation used by the conv layers
            rng: numpy Generator shared by all layers for initialization
            tie_mode: Pooling tie mode of the conv layers
        """
        if not (len(n_kernels) == len(kernel_sizes) == len(pool_sizes)) or len(n_kernels) == 0:
            raise ConfigurationError("n_kernels, kernel_sizes and pool_sizes must have the same non-zero length")

        rng = make_rng() if rng is None else rng

        self.input_shape = tuple(input_shape)
        self.conv_layers = []

        channel, height, width = self.input_shape
        for n_kernel, kernel_size, pool_size in zip(n_kernels, kernel_sizes, pool_sizes):
            layer = ConvolutionPoolingLayer((height, width), channel, n_kernel, kernel_size, pool_size,
                                            rng=rng, activation=activation, tie_mode=tie_mode)
            self.conv_layers.append(layer)
            channel, height, width = layer.output_shape

        self.flatten_dim = channel * height * width
        self.classifier = FullyConnected(self.flatten_dim, num_classes, rng=rng)
        self.softmax = get_activation('softmax')

        # per-layer (input, ForwardResult) of the last forward call
        self.cache = []

    def forward(self, X):
        """
        Args:
            X: shape (batch_size, C, H, W)

        Returns:
            Class probabilities, shape (batch_size, num_classes)
        """
        self.cache = []
        out = X
        for layer in self.conv_layers:
            result = layer.forward_batch(out)
            self.cache.append((out, result))
            out = result.output

        self.pooled_shape = out.shape
        logits = self.classifier.forward(out.reshape(out.shape[0], -1))
        return self.softmax.forward(logits)

    def backward(self, dout, learning_rate):
        """
        Backpropagate the loss gradient and update every layer

        Args:
            dout: Gradient w.r.t. the logits, shape (batch_size, num_classes)
            learning_rate: SGD step size for this step

        Returns:
            Gradient w.r.t. the network input
        """
        dout = self.softmax.backward(dout)
        dout = self.classifier.backward(dout, learning_rate).reshape(self.pooled_shape)

        for layer, (X, result) in zip(reversed(self.conv_layers), reversed(self.cache)):
            dout = layer.backward_from(X, result, dout, learning_rate)

        return dout

    def predict(self, X):
        return np.argmax(self.forward(X), axis=1)

    def layers(self):
        return self.conv_layers + [self.classifier]

    def get_params(self):
        """Flat dict of all parameters, keyed 'layer{i}_{name}'"""
        params = {}
        for i, layer in enumerate(self.layers()):
            for name, value in layer.get_params().items():
                params[f"layer{i}_{name}"] = value
        return params

    def save(self, filename):
        np.save(filename, self.get_params())

    def load(self, filename):
        params = np.load(filename, allow_pickle=True).item()

        for i, layer in enumerate(self.layers()):
            layer.set_params({name: params[f"layer{i}_{name}"] for name in layer.params})
