class SGD:
    """Plain stochastic gradient descent

    Update rule: w = w - learning_rate * dw / minibatch_size
    The gradients are sums over the minibatch, so dividing by the batch size
    applies the mean gradient.
    """
    def __init__(self, learning_rate=0.01):
        self.learning_rate = learning_rate

    def update(self, params, grads, minibatch_size=1):
        """
        Update parameters in place

        Args:
            params: Dict of parameter arrays, modified in place
            grads: Dict of accumulated gradients with the same keys
            minibatch_size: Number of samples the gradients were summed over
        """
        for key in params:
            params[key] -= self.learning_rate * grads[key] / minibatch_size


def sgd_update(params, grads, learning_rate, minibatch_size=1):
    """
    Pure form of SGD.update

    Returns:
        A new parameter dict; the input arrays are left untouched
    """
    return {key: params[key] - learning_rate * grads[key] / minibatch_size for key in params}
