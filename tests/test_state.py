import unittest

import numpy as np

from deptree_rnnlm.state import ActivationState, BpttBuffer


class ActivationStateTest(unittest.TestCase):
    def setUp(self) -> None:
        self.state = ActivationState(5, 3, 2, 2, compress_size=0, direct_order=3)

    def test_layer_sizes(self) -> None:
        self.assertEqual(self.state.input_size, 5)
        self.assertEqual(self.state.hidden_size, 3)
        self.assertEqual(self.state.feature_size, 2)
        self.assertEqual(self.state.compress_size, 0)
        self.assertEqual(self.state.output_size, 7)

    def test_reset_hidden_keeps_features_and_outputs(self) -> None:
        self.state.hidden_layer[:] = 0.7
        self.state.recurrent_layer[:] = 0.3
        self.state.feature_layer[:] = 1.0
        self.state.output_layer[:] = 0.2
        self.state.word_history[:3] = [4, 2, 1]
        self.state.reset_hidden()
        self.assertFalse(self.state.hidden_layer.any())
        self.assertFalse(self.state.recurrent_layer.any())
        self.assertFalse(self.state.word_history.any())
        self.assertTrue(np.all(self.state.feature_layer == 1.0))
        self.assertTrue(np.all(self.state.output_layer == 0.2))

    def test_reset_clears_everything(self) -> None:
        self.state.feature_layer[:] = 1.0
        self.state.output_gradient[:] = -1.0
        self.state.reset()
        self.assertFalse(self.state.feature_layer.any())
        self.assertFalse(self.state.output_gradient.any())

    def test_copy_is_independent(self) -> None:
        self.state.hidden_layer[:] = 0.5
        clone = self.state.copy()
        clone.hidden_layer[0] = 0.9
        self.assertEqual(self.state.hidden_layer[0], 0.5)

    def test_assign_writes_in_place(self) -> None:
        other = self.state.copy()
        other.recurrent_layer[:] = [0.1, 0.2, 0.3]
        other.word_history[0] = 4
        target = self.state.recurrent_layer
        self.state.assign(other)
        self.assertIs(self.state.recurrent_layer, target)
        np.testing.assert_array_equal(self.state.recurrent_layer, [0.1, 0.2, 0.3])
        self.assertEqual(self.state.word_history[0], 4)

    def test_dict_round_trip_preserves_empty_layers(self) -> None:
        self.state.hidden_layer[:] = [0.25, 0.5, 0.125]
        loaded = ActivationState.from_dict(self.state.to_dict())
        self.assertEqual(loaded.compress_size, 0)
        self.assertEqual(loaded.direct_order, 3)
        np.testing.assert_array_equal(loaded.hidden_layer, self.state.hidden_layer)


class BpttBufferTest(unittest.TestCase):
    def test_window_without_bptt_is_one_step(self) -> None:
        buffer = BpttBuffer(5, 2, 0, 0, 1)
        self.assertEqual(buffer.window, 1)

    def test_window_and_depth(self) -> None:
        buffer = BpttBuffer(5, 2, 0, 4, 3)
        self.assertEqual(buffer.window, 6)
        self.assertEqual(buffer.depth, 8)
        self.assertTrue(np.all(buffer.history == -1))

    def test_shift_moves_every_slot_back(self) -> None:
        buffer = BpttBuffer(5, 2, 1, 2, 1)
        buffer.hidden_layer[0] = [1.0, 2.0]
        buffer.hidden_gradient[0] = [3.0, 4.0]
        buffer.feature_layer[0] = [0.5]
        buffer.shift(3)
        self.assertEqual(buffer.history[0], 3)
        self.assertEqual(buffer.history[1], -1)
        np.testing.assert_array_equal(buffer.hidden_layer[1], [1.0, 2.0])
        np.testing.assert_array_equal(buffer.hidden_gradient[1], [3.0, 4.0])
        np.testing.assert_array_equal(buffer.feature_layer[1], [0.5])
        buffer.shift(4)
        self.assertEqual(list(buffer.history[:2]), [4, 3])
        np.testing.assert_array_equal(buffer.hidden_layer[2], [1.0, 2.0])

    def test_oldest_slot_falls_off(self) -> None:
        buffer = BpttBuffer(5, 1, 0, 1, 1)
        for word in range(5):
            buffer.shift(word)
        self.assertEqual(buffer.depth, 3)
        self.assertEqual(list(buffer.history), [4, 3, 2])

    def test_reset(self) -> None:
        buffer = BpttBuffer(5, 2, 0, 2, 2)
        buffer.shift(1)
        buffer.input_to_hidden[1] = 1.0
        buffer.hidden_gradient[:] = 1.0
        buffer.reset()
        self.assertTrue(np.all(buffer.history == -1))
        self.assertFalse(buffer.input_to_hidden.any())
        self.assertFalse(buffer.hidden_gradient.any())


if __name__ == "__main__":
    unittest.main()
