import os

from train import parse_args, train


def test_train_smoke(tmp_path):
    args = parse_args(['--num_samples', '20', '--image_size', '8', '--num_epochs', '2', '--batch_size', '8',
                       '--scheduler', 'linear', '--save_dir', str(tmp_path), '--no_plot'])

    model, history = train(args)

    assert len(history['train_loss']) == 2
    assert history['lr'][0] == args.learning_rate
    assert os.path.exists(os.path.join(str(tmp_path), 'convpool_best.npy'))
    assert model.conv_layers[0].output_shape == (4, 3, 3)
