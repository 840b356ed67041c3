import numpy as np
import matplotlib.pyplot as plt

from convpool.utils.initializers import make_rng

CLASS_NAMES = ['horizontal', 'vertical']


def make_bars_dataset(n_samples, image_size=(12, 12), noise=0.1, rng=None):
    """
    Generate a synthetic two-class image dataset

    Class 0 images contain a horizontal bar, class 1 images a vertical bar,
    at a random position, plus gaussian noise.

    Args:
        n_samples: Number of images
        image_size: (H, W)
        noise: Standard deviation of the additive noise
        rng: numpy Generator

    Returns:
        X: Images, shape (n_samples, 1, H, W)
        y: Labels, shape (n_samples,)
    """
    rng = make_rng() if rng is None else rng
    height, width = image_size

    X = noise * rng.standard_normal((n_samples, 1, height, width))
    y = rng.integers(0, 2, size=n_samples)

    for n in range(n_samples):
        if y[n] == 0:
            X[n, 0, rng.integers(0, height), :] += 1.0
        else:
            X[n, 0, :, rng.integers(0, width)] += 1.0

    return X, y


def split_data(X, y, validation_split=0.2, rng=None):
    """
    Randomly split data into training and validation sets

    Returns:
        X_train, y_train, X_val, y_val
    """
    rng = make_rng() if rng is None else rng

    num_val = int(len(X) * validation_split)
    indices = rng.permutation(len(X))
    train_idx, val_idx = indices[num_val:], indices[:num_val]

    return X[train_idx], y[train_idx], X[val_idx], y[val_idx]


class DataLoader:
    """
    Data loader for batch loading
    """
    def __init__(self, X, y, batch_size=16, shuffle=True, rng=None):
        """
        Args:
            X: Feature data
            y: Label data
            batch_size: Batch size
            shuffle: Whether to shuffle data in each epoch
            rng: numpy Generator used for shuffling
        """
        self.X = X
        self.y = y
        self.batch_size = batch_size
        self.shuffle = shuffle
        self.rng = make_rng() if rng is None else rng
        self.n_samples = X.shape[0]
        self.indices = np.arange(self.n_samples)
        self.idx = 0

    def __iter__(self):
        self.idx = 0
        if self.shuffle:
            self.rng.shuffle(self.indices)
        return self

    def __next__(self):
        if self.idx >= self.n_samples:
            raise StopIteration

        batch_indices = self.indices[self.idx:min(self.idx + self.batch_size, self.n_samples)]
        self.idx += self.batch_size

        return self.X[batch_indices], self.y[batch_indices]

    def __len__(self):
        return (self.n_samples + self.batch_size - 1) // self.batch_size


def plot_training_history(history, save_path=None, show=True):
    """
    Plot training history

    Args:
        history: Dict with 'train_loss', 'val_loss', 'train_acc', 'val_acc' and optionally 'lr'
        save_path: Path to save the plot (if None, plot will be displayed only)
        show: Whether to call plt.show()
    """
    epochs = range(1, len(history['train_loss']) + 1)
    n_plots = 3 if 'lr' in history else 2

    fig = plt.figure(figsize=(6 * n_plots, 5))

    plt.subplot(1, n_plots, 1)
    plt.plot(epochs, history['train_loss'], 'o-', color='#4285F4', label='Train Loss', linewidth=2, markersize=4)
    plt.plot(epochs, history['val_loss'], 'o-', color='#EA4335', label='Validation Loss', linewidth=2, markersize=4)
    plt.title('Training and Validation Loss', fontsize=14, fontweight='bold')
    plt.xlabel('Epochs')
    plt.ylabel('Loss')
    plt.legend()
    plt.grid(True, alpha=0.3)

    plt.subplot(1, n_plots, 2)
    plt.plot(epochs, history['train_acc'], 'o-', color='#4285F4', label='Train Accuracy', linewidth=2, markersize=4)
    plt.plot(epochs, history['val_acc'], 'o-', color='#EA4335', label='Validation Accuracy', linewidth=2, markersize=4)
    plt.title('Training and Validation Accuracy', fontsize=14, fontweight='bold')
    plt.xlabel('Epochs')
    plt.ylabel('Accuracy')
    plt.legend()
    plt.grid(True, alpha=0.3)

    if 'lr' in history:
        plt.subplot(1, n_plots, 3)
        plt.plot(epochs, history['lr'], 'o-', color='#34A853', linewidth=2, markersize=4)
        plt.title('Learning Rate', fontsize=14, fontweight='bold')
        plt.xlabel('Epochs')
        plt.ylabel('Learning Rate')
        plt.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"Training history plot saved to: {save_path}")

    if show:
        plt.show()
    plt.close(fig)


def visualize_kernels(W, title="Convolution Kernels", save_path=None, show=True):
    """
    Visualize the kernels of a convolution layer, averaged across input channels

    Args:
        W: Weights, shape (K, C, kh, kw)
        title: Plot title
        save_path: Path to save the plot (if None, plot will be displayed only)
        show: Whether to call plt.show()
    """
    n_kernel = W.shape[0]
    cols = min(4, n_kernel)
    rows = (n_kernel + cols - 1) // cols

    fig, axes = plt.subplots(rows, cols, figsize=(3 * cols, 3 * rows), squeeze=False)

    for i, ax in enumerate(axes.flat):
        ax.axis('off')
        if i >= n_kernel:
            continue
        kernel_img = np.mean(W[i], axis=0)
        im = ax.imshow(kernel_img, cmap='plasma')
        ax.set_title(f'Kernel {i+1}', fontsize=12)

    fig.colorbar(im, ax=axes.ravel().tolist())
    fig.suptitle(title, fontsize=14, fontweight='bold')

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"Kernel visualization saved to: {save_path}")

    if show:
        plt.show()
    plt.close(fig)
