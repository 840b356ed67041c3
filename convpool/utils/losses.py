import numpy as np


class Loss:
    """Loss base class"""
    def forward(self, y_pred, y_true):
        raise NotImplementedError

    def backward(self):
        raise NotImplementedError


class CrossEntropyLoss(Loss):
    """Cross entropy on softmax probabilities

    L = -mean(sum(y_true * log(y_pred)))
    backward() returns the per-sample gradient w.r.t. the logits, (y_pred - y_true);
    the layers average it over the minibatch when they update.
    """
    def forward(self, y_pred, y_true):
        """
        Args:
            y_pred: Probabilities, shape (batch_size, num_classes)
            y_true: Class indices (batch_size,) or one-hot (batch_size, num_classes)

        Returns:
            Mean cross entropy over the batch
        """
        self.batch_size = y_pred.shape[0]

        if y_true.ndim == 1:
            y_true_one_hot = np.zeros_like(y_pred)
            y_true_one_hot[np.arange(self.batch_size), y_true] = 1
            self.y_true = y_true_one_hot
        else:
            self.y_true = y_true

        # avoid log(0)
        epsilon = 1e-15
        self.y_pred = np.clip(y_pred, epsilon, 1 - epsilon)

        return np.sum(self.y_true * -np.log(self.y_pred)) / self.batch_size

    def backward(self):
        return self.y_pred - self.y_true


class SquaredErrorLoss(Loss):
    """L = 0.5 * sum((y_pred - y_true)^2), summed over the batch"""
    def forward(self, y_pred, y_true):
        self.diff = y_pred - y_true
        return 0.5 * np.sum(self.diff ** 2)

    def backward(self):
        return self.diff
