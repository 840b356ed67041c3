import numpy as np


class LRScheduler:
    """Learning rate schedule, queried once per epoch by the training loop"""
    def __init__(self, learning_rate):
        self.initial_lr = learning_rate
        self.current_lr = learning_rate

    def step(self, epoch):
        raise NotImplementedError

    def get_lr(self):
        return self.current_lr


class ConstantLR(LRScheduler):
    def step(self, epoch):
        pass


class LinearDecayLR(LRScheduler):
    """Linear decay from the initial rate to min_lr over total_epochs"""
    def __init__(self, learning_rate, total_epochs, min_lr=0.0):
        super().__init__(learning_rate)
        self.total_epochs = total_epochs
        self.min_lr = min_lr

    def step(self, epoch):
        decay_factor = max(0, 1 - epoch / self.total_epochs)
        self.current_lr = self.min_lr + (self.initial_lr - self.min_lr) * decay_factor


class CosineDecayLR(LRScheduler):
    """Cosine decay from the initial rate to min_lr over total_epochs"""
    def __init__(self, learning_rate, total_epochs, min_lr=0.0):
        super().__init__(learning_rate)
        self.total_epochs = total_epochs
        self.min_lr = min_lr

    def step(self, epoch):
        cosine_decay = 0.5 * (1 + np.cos(np.pi * min(epoch, self.total_epochs) / self.total_epochs))
        self.current_lr = self.min_lr + (self.initial_lr - self.min_lr) * cosine_decay


def get_scheduler(scheduler_name, learning_rate, total_epochs=100, min_lr=0.0):
    """
    Get a learning rate scheduler by name

    Args:
        scheduler_name: 'constant', 'linear' or 'cosine'
        learning_rate: Initial learning rate
        total_epochs: Decay horizon of 'linear' and 'cosine'
        min_lr: Final learning rate of 'linear' and 'cosine'
    """
    name = scheduler_name.lower()
    if name == 'constant':
        return ConstantLR(learning_rate)
    elif name == 'linear':
        return LinearDecayLR(learning_rate, total_epochs, min_lr)
    elif name == 'cosine':
        return CosineDecayLR(learning_rate, total_epochs, min_lr)

    raise ValueError(f"Unsupported scheduler: {scheduler_name}")
