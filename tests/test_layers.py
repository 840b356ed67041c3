import numpy as np
import pytest

from convpool.errors import ShapeError, ConfigurationError
from convpool.models.layers import ConvolutionPoolingLayer, FullyConnected
from convpool.utils.gradient_check import numerical_gradient, relative_error
from convpool.utils.initializers import WeightInitializer


def make_layer(**kwargs):
    config = dict(image_size=(5, 5), channel=2, n_kernel=2, kernel_size=(2, 2), pool_size=(2, 2),
                  rng=np.random.default_rng(7), activation='tanh')
    config.update(kwargs)
    return ConvolutionPoolingLayer(**config)


def test_shape_law():
    layer = ConvolutionPoolingLayer((28, 28), 1, 6, (5, 5), (2, 2))

    assert layer.convolved_size == (24, 24)
    assert layer.pooled_size == (12, 12)
    assert layer.params['W'].shape == (6, 1, 5, 5)
    assert layer.params['b'].shape == (6,)
    assert layer.output_shape == (6, 12, 12)


def test_explicit_sizes_are_checked():
    ConvolutionPoolingLayer((6, 6), 1, 1, (3, 3), (2, 2), convolved_size=(4, 4), pooled_size=(2, 2))

    with pytest.raises(ConfigurationError, match='convolved_size'):
        ConvolutionPoolingLayer((6, 6), 1, 1, (3, 3), (2, 2), convolved_size=(3, 3))
    with pytest.raises(ConfigurationError, match='pooled_size'):
        ConvolutionPoolingLayer((6, 6), 1, 1, (3, 3), (2, 2), pooled_size=(4, 4))


@pytest.mark.parametrize('kwargs', [
    dict(image_size=(6, 6), kernel_size=(2, 2), pool_size=(2, 2)),   # convolved 5x5
    dict(image_size=(5, 5), kernel_size=(6, 2), pool_size=(1, 1)),   # kernel larger than image
    dict(image_size=(5, 5), kernel_size=(2, 2), pool_size=(0, 2)),
    dict(image_size=(5, 5), kernel_size=(2,), pool_size=(2, 2)),
    dict(activation='softmax'),
    dict(activation='gelu'),
    dict(tie_mode='random'),
    dict(n_kernel=0),
])
def test_invalid_configuration(kwargs):
    with pytest.raises(ConfigurationError):
        make_layer(**kwargs)


def test_default_random_source_is_seeded():
    a = ConvolutionPoolingLayer((6, 6), 2, 3, (3, 3), (2, 2))
    b = ConvolutionPoolingLayer((6, 6), 2, 3, (3, 3), (2, 2))
    W, _ = WeightInitializer(np.random.default_rng(1234)).conv_weights(3, 2, (3, 3), (2, 2))

    np.testing.assert_array_equal(a.params['W'], b.params['W'])
    np.testing.assert_array_equal(a.params['W'], W)
    np.testing.assert_array_equal(a.params['b'], np.zeros(3))
    assert a.activation.name == 'relu'
    assert a.tie_mode == 'first'


def test_weights_within_uniform_bound():
    layer = ConvolutionPoolingLayer((10, 10), 3, 8, (3, 3), (2, 2), rng=np.random.default_rng(1))
    bound = np.sqrt(6. / (3 * 3 * 3 + 8 * 3 * 3 // 4))

    assert np.all(np.abs(layer.params['W']) <= bound)
    assert np.abs(layer.params['W']).max() > bound / 2


def test_identity_kernel_then_pool():
    layer = ConvolutionPoolingLayer((2, 2), 1, 1, (1, 1), (2, 2), activation='identity')
    layer.params['W'][:] = 1.0

    result = layer.forward(np.array([[[1., 3.], [2., 4.]]]))

    np.testing.assert_array_equal(result.output, [[[4.]]])
    np.testing.assert_array_equal(result.pre_activation, [[[1., 3.], [2., 4.]]])


def test_forward_is_deterministic(rng):
    layer = make_layer()
    x = rng.standard_normal((2, 5, 5))

    first = layer.forward(x)
    second = layer.forward(x)

    for a, b in zip(first, second):
        np.testing.assert_array_equal(a, b)


def test_degenerate_pool_is_identity(rng):
    layer = ConvolutionPoolingLayer((4, 5), 1, 1, (2, 2), (1, 1), rng=rng)

    result = layer.forward(rng.standard_normal((1, 4, 5)))

    assert layer.pooled_size == layer.convolved_size == (3, 4)
    np.testing.assert_array_equal(result.output, result.activation)


def test_forward_batch_stacks_results(rng):
    layer = make_layer()
    X = rng.standard_normal((3, 2, 5, 5))

    result = layer.forward_batch(X)

    assert result.output.shape == (3, 2, 2, 2)
    assert result.activation.shape == (3, 2, 4, 4)
    assert result.argmax.shape == (3, 2, 2, 2, 2)
    np.testing.assert_array_equal(result.output[1], layer.forward(X[1]).output)


def test_weight_gradient_matches_finite_difference(rng):
    layer = make_layer()
    X = rng.standard_normal((3, 2, 5, 5))
    G = rng.standard_normal((3, 2, 2, 2))

    def loss():
        return sum(np.sum(layer.forward(X[n]).output * G[n]) for n in range(3))

    numeric_W = numerical_gradient(loss, layer.params['W'])
    numeric_b = numerical_gradient(loss, layer.params['b'])

    result = layer.forward_batch(X)
    layer.backward(X, result.activation, result.output, G, 3, 0.0, argmax=result.argmax)

    assert relative_error(layer.grads['W'], numeric_W) < 1e-4
    assert relative_error(layer.grads['b'], numeric_b) < 1e-4


def test_backward_applies_mean_sgd_step(rng):
    layer = make_layer(activation='relu')
    X = rng.standard_normal((4, 2, 5, 5))
    dY = rng.standard_normal((4, 2, 2, 2))
    W_before = layer.params['W'].copy()
    b_before = layer.params['b'].copy()

    result = layer.forward_batch(X)
    dX = layer.backward_from(X, result, dY, 0.05)

    assert dX.shape == X.shape
    np.testing.assert_allclose(layer.params['W'], W_before - 0.05 * layer.grads['W'] / 4)
    np.testing.assert_allclose(layer.params['b'], b_before - 0.05 * layer.grads['b'] / 4)


def test_bias_decreases_for_positive_gradient(rng):
    layer = ConvolutionPoolingLayer((3, 3), 1, 2, (2, 2), (1, 1), rng=rng, activation='identity')
    X = rng.standard_normal((2, 1, 3, 3))
    b_before = layer.params['b'].copy()

    result = layer.forward_batch(X)
    layer.backward_from(X, result, np.ones((2, 2, 2, 2)), 0.1)

    assert np.all(layer.params['b'] < b_before)
    # four output positions per sample, mean over two samples
    np.testing.assert_allclose(layer.params['b'], b_before - 0.1 * 4)


def test_duplicate_mode_changes_gradient_on_ties():
    first = ConvolutionPoolingLayer((2, 2), 1, 1, (1, 1), (2, 2), activation='identity')
    duplicate = ConvolutionPoolingLayer((2, 2), 1, 1, (1, 1), (2, 2), activation='identity',
                                        tie_mode='duplicate')
    X = np.array([[[[2., 2.], [1., 0.]]]])
    for layer in (first, duplicate):
        layer.params['W'][:] = 1.0
        result = layer.forward_batch(X)
        layer.backward_from(X, result, np.ones((1, 1, 1, 1)), 0.0)

    assert first.grads['b'][0] == 1.0
    assert duplicate.grads['b'][0] == 2.0


def test_backward_rejects_wrong_shapes_without_updating(rng):
    layer = make_layer()
    X = rng.standard_normal((2, 2, 5, 5))
    result = layer.forward_batch(X)
    W_before = layer.params['W'].copy()

    with pytest.raises(ShapeError, match='input batch'):
        layer.backward(X, result.activation, result.output, np.zeros((2, 2, 2, 2)), 3, 0.1)
    with pytest.raises(ShapeError, match='pooled output gradient'):
        layer.backward(X, result.activation, result.output, np.zeros((2, 2, 3, 2)), 2, 0.1)

    np.testing.assert_array_equal(layer.params['W'], W_before)


def test_empty_batch_is_a_shape_error():
    layer = make_layer()
    X = np.zeros((0, 2, 5, 5))

    with pytest.raises(ShapeError, match='empty'):
        layer.forward_batch(X)
    with pytest.raises(ShapeError, match='minibatch size'):
        layer.backward(X, np.zeros((0, 2, 4, 4)), np.zeros((0, 2, 2, 2)), np.zeros((0, 2, 2, 2)), 0, 0.1)


@pytest.mark.parametrize('kwargs', [dict(channel=None), dict(n_kernel=None), dict(channel='two')])
def test_missing_counts_are_configuration_errors(kwargs):
    with pytest.raises(ConfigurationError, match='positive integer'):
        make_layer(**kwargs)


def test_fan_out_uses_integer_pool_reduction():
    # 1 * 3 * 3 // 4 == 2, not 2.25
    W, _ = WeightInitializer(np.random.default_rng(5)).conv_weights(1, 1, (3, 3), (2, 2))
    bound = np.sqrt(6. / (9 + 2))

    expected = np.random.default_rng(5).uniform(-bound, bound, size=(1, 1, 3, 3))
    np.testing.assert_array_equal(W, expected)


def test_set_params_validates_shape():
    layer = make_layer()
    params = layer.get_params()
    params['W'] = params['W'] + 1.0

    layer.set_params(params)
    np.testing.assert_array_equal(layer.params['W'], params['W'])

    with pytest.raises(ShapeError):
        layer.set_params({'W': np.zeros((1, 1, 2, 2)), 'b': params['b']})


def test_fully_connected_backward_updates(rng):
    fc = FullyConnected(4, 3, rng=rng)
    x = rng.standard_normal((5, 4))
    dout = rng.standard_normal((5, 3))
    W_before = fc.params['W'].copy()

    fc.forward(x)
    dx = fc.backward(dout, learning_rate=0.1)

    np.testing.assert_allclose(dx, dout @ W_before.T)
    np.testing.assert_allclose(fc.params['W'], W_before - 0.1 * (x.T @ dout) / 5)
