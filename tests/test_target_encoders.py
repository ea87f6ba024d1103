# tests/test_target_encoders.py
import numpy as np
import pytest

from nnlab.neural_networks import CopyTargetEncoder, OneOfNTargetEncoder


def test_one_of_n_is_a_bijection_on_sorted_classes():
    encoder = OneOfNTargetEncoder().fit([3.0, 1.0, 2.0, 3.0])

    np.testing.assert_array_equal(encoder.classes_, [1.0, 2.0, 3.0])
    encoded = encoder.encode(np.array([1.0, 2.0, 3.0]))
    np.testing.assert_array_equal(encoded, np.eye(3))


def test_one_of_n_rows_are_unit_vectors():
    encoder = OneOfNTargetEncoder().fit(["b", "a", "c"])
    encoded = encoder.encode(["c", "a", "c", "b"])

    np.testing.assert_array_equal(encoded.sum(axis=1), 1.0)
    np.testing.assert_array_equal(np.argmax(encoded, axis=1), [2, 0, 2, 1])


def test_one_of_n_decode_recovers_class_values():
    encoder = OneOfNTargetEncoder().fit([10, 20, 30])
    probabilities = np.array([[0.1, 0.7, 0.2], [0.6, 0.3, 0.1]])
    np.testing.assert_array_equal(encoder.decode(probabilities), [20, 10])

    targets = np.array([30, 10, 20, 20])
    np.testing.assert_array_equal(encoder.decode(encoder.encode(targets)), targets)


def test_one_of_n_rejects_unknown_values():
    encoder = OneOfNTargetEncoder().fit([0, 1])
    with pytest.raises(ValueError):
        encoder.encode([0, 2])


def test_one_of_n_requires_fit():
    with pytest.raises(ValueError):
        OneOfNTargetEncoder().encode([1])


def test_copy_encoder_returns_column():
    encoder = CopyTargetEncoder().fit([1.0, 2.0])
    np.testing.assert_array_equal(encoder.encode([1.0, 2.0]), [[1.0], [2.0]])

    matrix = np.array([[1.0, 2.0], [3.0, 4.0]])
    np.testing.assert_array_equal(encoder.encode(matrix), matrix)
