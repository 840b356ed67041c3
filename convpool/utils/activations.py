import numpy as np


class Activation:
    """
    Activation strategy base class

    activate() maps pre-activation values to outputs; derivative() takes the
    post-activation value, i.e. derivative(activate(x)) == f'(x).
    forward()/backward() are the cached layer form used between dense layers.
    """
    name = None
    elementwise = True

    def activate(self, x):
        raise NotImplementedError

    def derivative(self, y):
        raise NotImplementedError

    def forward(self, x):
        self.out = self.activate(x)
        return self.out

    def backward(self, dout):
        return dout * self.derivative(self.out)


class ReLU(Activation):
    """ReLU: f(x) = max(0, x)"""
    name = 'relu'

    def activate(self, x):
        return np.maximum(0, x)

    def derivative(self, y):
        # y <= 0 only when the input was <= 0
        return (np.asarray(y) > 0).astype(np.float64)


class Sigmoid(Activation):
    """Sigmoid: f(x) = 1 / (1 + exp(-x))"""
    name = 'sigmoid'

    def activate(self, x):
        return 1 / (1 + np.exp(-x))

    def derivative(self, y):
        return y * (1 - y)


class Tanh(Activation):
    """Tanh: f(x) = tanh(x)"""
    name = 'tanh'

    def activate(self, x):
        return np.tanh(x)

    def derivative(self, y):
        return 1 - y ** 2


class Identity(Activation):
    name = 'identity'

    def activate(self, x):
        return np.asarray(x, dtype=np.float64)

    def derivative(self, y):
        return np.ones_like(y, dtype=np.float64)


class Softmax(Activation):
    """Softmax over the last axis, only meaningful for the output layer"""
    name = 'softmax'
    elementwise = False

    def activate(self, x):
        # subtract the row max for numerical stability
        x_shifted = x - np.max(x, axis=-1, keepdims=True)
        exp_x = np.exp(x_shifted)
        return exp_x / np.sum(exp_x, axis=-1, keepdims=True)

    def derivative(self, y):
        raise NotImplementedError("softmax has no elementwise derivative")

    def backward(self, dout):
        # paired with CrossEntropyLoss, which already returns the gradient w.r.t. the logits
        return dout


ACTIVATIONS = {
    'relu': ReLU,
    'sigmoid': Sigmoid,
    'tanh': Tanh,
    'identity': Identity,
    'softmax': Softmax,
}


def get_activation(activation):
    """
    Get an activation strategy by name

    Args:
        activation: Name ('relu', 'sigmoid', 'tanh', 'identity', 'softmax')
            or an Activation instance, returned unchanged

    Returns:
        A new Activation instance
    """
    if isinstance(activation, Activation):
        return activation

    if activation is None or activation.lower() not in ACTIVATIONS:
        raise ValueError(f"Unsupported activation: {activation}")

    return ACTIVATIONS[activation.lower()]()
