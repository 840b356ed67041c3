import numpy as np
import os
import argparse
import time
from convpool.utils.data_utils import make_bars_dataset, split_data, DataLoader, plot_training_history, visualize_kernels
from convpool.utils.losses import CrossEntropyLoss
from convpool.utils.schedulers import get_scheduler
from convpool.utils.initializers import make_rng
from convpool.models.cnn import ConvPoolNet


def compute_accuracy(y_pred, y_true):
    """
    Compute classification accuracy

    Args:
        y_pred: Model predictions, shape (batch_size, num_classes)
        y_true: True labels, shape (batch_size,)
    """
    pred_classes = np.argmax(y_pred, axis=1)
    return np.mean(pred_classes == y_true)


def evaluate(model, criterion, loader):
    total_loss = 0.0
    total_acc = 0.0
    for X_batch, y_batch in loader:
        y_pred = model.forward(X_batch)
        total_loss += criterion.forward(y_pred, y_batch)
        total_acc += compute_accuracy(y_pred, y_batch)
    return total_loss / len(loader), total_acc / len(loader)


def train(args):
    """
    Train a ConvPoolNet on the synthetic bars dataset

    Args:
        args: Command line arguments

    Returns:
        The trained model and its training history
    """
    rng = make_rng(args.seed)

    os.makedirs(args.save_dir, exist_ok=True)

    print("Generating dataset...")
    X, y = make_bars_dataset(args.num_samples, image_size=(args.image_size, args.image_size),
                             noise=args.noise, rng=rng)
    X_train, y_train, X_val, y_val = split_data(X, y, validation_split=args.val_split, rng=rng)
    print(f"Data shapes - Training: {X_train.shape}, Validation: {X_val.shape}")

    train_loader = DataLoader(X_train, y_train, batch_size=args.batch_size, rng=rng)
    val_loader = DataLoader(X_val, y_val, batch_size=args.batch_size, shuffle=False)

    model = ConvPoolNet(
        input_shape=(1, args.image_size, args.image_size),
        n_kernels=args.n_kernels,
        kernel_sizes=[(k, k) for k in args.kernel_sizes],
        pool_sizes=[(p, p) for p in args.pool_sizes],
        num_classes=2,
        activation=args.activation,
        rng=rng,
        tie_mode=args.tie_mode
    )

    criterion = CrossEntropyLoss()
    scheduler = get_scheduler(args.scheduler, args.learning_rate, total_epochs=args.num_epochs, min_lr=args.min_lr)

    history = {
        'train_loss': [],
        'train_acc': [],
        'val_loss': [],
        'val_acc': [],
        'lr': []
    }
    best_val_acc = -1.0

    print("Start training...")
    for epoch in range(args.num_epochs):
        scheduler.step(epoch)
        current_lr = scheduler.get_lr()
        history['lr'].append(current_lr)

        train_loss = 0.0
        train_acc = 0.0
        start_time = time.time()

        for batch_idx, (X_batch, y_batch) in enumerate(train_loader):
            y_pred = model.forward(X_batch)
            loss = criterion.forward(y_pred, y_batch)
            accuracy = compute_accuracy(y_pred, y_batch)

            model.backward(criterion.backward(), current_lr)

            train_loss += loss
            train_acc += accuracy

            if (batch_idx + 1) % args.log_every == 0:
                print(f"Epoch [{epoch+1}/{args.num_epochs}] Batch [{batch_idx+1}/{len(train_loader)}] "
                      f"Loss: {loss:.4f} Acc: {accuracy:.4f} LR: {current_lr:.6f}")

        train_loss /= len(train_loader)
        train_acc /= len(train_loader)
        val_loss, val_acc = evaluate(model, criterion, val_loader)

        history['train_loss'].append(train_loss)
        history['train_acc'].append(train_acc)
        history['val_loss'].append(val_loss)
        history['val_acc'].append(val_acc)

        epoch_time = time.time() - start_time
        print(f"Epoch [{epoch+1}/{args.num_epochs}] - {epoch_time:.2f}s - "
              f"Train Loss: {train_loss:.4f} - Train Acc: {train_acc:.4f} - "
              f"Val Loss: {val_loss:.4f} - Val Acc: {val_acc:.4f}")

        if val_acc > best_val_acc:
            best_val_acc = val_acc
            model_path = os.path.join(args.save_dir, "convpool_best.npy")
            model.save(model_path)
            print(f"Saved best model to: {model_path}")

    print(f"Best validation accuracy: {best_val_acc:.4f}")

    if not args.no_plot:
        plot_training_history(history, save_path=os.path.join(args.save_dir, "training_history.png"), show=False)
        visualize_kernels(model.conv_layers[0].params['W'],
                          save_path=os.path.join(args.save_dir, "kernels.png"), show=False)

    return model, history


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Train a convolution-pooling network on synthetic bar images')

    # data
    parser.add_argument('--num_samples', type=int, default=400, help='Number of generated images')
    parser.add_argument('--image_size', type=int, default=12, help='Image height and width')
    parser.add_argument('--noise', type=float, default=0.1, help='Std of the additive noise')
    parser.add_argument('--val_split', type=float, default=0.2, help='Validation split')
    parser.add_argument('--batch_size', type=int, default=16, help='Minibatch size')

    # model
    parser.add_argument('--n_kernels', type=int, nargs='+', default=[4], help='Kernels per conv layer')
    parser.add_argument('--kernel_sizes', type=int, nargs='+', default=[3], help='Kernel size per conv layer')
    parser.add_argument('--pool_sizes', type=int, nargs='+', default=[2], help='Pool size per conv layer')
    parser.add_argument('--activation', type=str, default='relu', help='Conv layer activation')
    parser.add_argument('--tie_mode', type=str, default='first', choices=['first', 'duplicate'],
                        help='Max-pool gradient routing on ties')

    # training
    parser.add_argument('--num_epochs', type=int, default=10, help='Number of epochs')
    parser.add_argument('--learning_rate', type=float, default=0.05, help='Initial learning rate')
    parser.add_argument('--scheduler', type=str, default='constant', choices=['constant', 'linear', 'cosine'],
                        help='Learning rate schedule')
    parser.add_argument('--min_lr', type=float, default=0.0, help='Final learning rate of decaying schedules')

    # other
    parser.add_argument('--seed', type=int, default=1234, help='Random seed')
    parser.add_argument('--save_dir', type=str, default='results', help='Output directory')
    parser.add_argument('--log_every', type=int, default=10, help='Batches between progress lines')
    parser.add_argument('--no_plot', action='store_true', help='Skip saving plots')

    return parser.parse_args(argv)


if __name__ == '__main__':
    train(parse_args())
