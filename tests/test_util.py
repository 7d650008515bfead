import threading

import numpy as np
import pytest

from Util.Evaluate import Evaluate
from Util.ImageLoader import ImageLoader
from Util.ThreadsafeRandom import ThreadsafeRandom
from Util.UpdateManager import UpdateManager


def test_confusion_skips_unlabelled_pixels():
    truth = np.array([[0, 1], [-1, 2]])
    prediction = np.array([[0, 2], [1, 2]])

    cm = Evaluate.confusion(truth, prediction, 3)

    assert cm.sum() == 3
    assert cm[1, 2] == 1
    assert Evaluate.accuracy(truth, prediction, 3) == pytest.approx(2 / 3)
    np.testing.assert_allclose(Evaluate.per_label_recall(truth, prediction, 3), [1.0, 0.0, 1.0])


def test_mask_restricts_evaluation():
    truth = np.array([0, 1, 1])
    prediction = np.array([0, 0, 1])
    assert Evaluate.accuracy(truth, prediction, 2, mask=np.array([1, 0, 1])) == 1.0
    assert Evaluate.summary(truth, prediction, 2)['average_recall'] == pytest.approx(0.75)


def test_random_draws_are_reproducible():
    ThreadsafeRandom.initialize(99)
    first = [ThreadsafeRandom.next_int(0, 100) for _ in range(10)]
    ThreadsafeRandom.initialize(99)
    second = [ThreadsafeRandom.next_int(0, 100) for _ in range(10)]
    assert first == second


def test_random_helpers_respect_ranges():
    for _ in range(50):
        assert -3 <= ThreadsafeRandom.next_int(-3, 4) <= 3
        assert 0 <= ThreadsafeRandom.next_int(5) < 5
        assert 1.0 <= ThreadsafeRandom.next_float(1.0, 2.0) < 2.0
    assert ThreadsafeRandom.sample_index([0.0, 0.0, 1.0]) == 2
    assert len(set(ThreadsafeRandom.select_random(list(range(10)), 4))) == 4
    assert ThreadsafeRandom.generate_random_distribution(5).sum() == pytest.approx(1.0)


def test_random_is_usable_from_many_threads():
    results = []

    def draw():
        results.append(ThreadsafeRandom.next_float())

    threads = [threading.Thread(target=draw) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert len(results) == 8


def test_update_manager_listeners_and_indent():
    lines = []
    UpdateManager.add_listener(lines.append)
    try:
        UpdateManager.write_line("[Test] {0} of {1}", 1, 2)
        UpdateManager.add_indent()
        UpdateManager.write_line("nested")
        UpdateManager.remove_indent()
        list(UpdateManager.progress_enum(range(10)))
    finally:
        UpdateManager.remove_listener(lines.append)

    assert lines[0] == "[Test] 1 of 2"
    assert lines[1] == UpdateManager.indent_string + "nested"
    assert "100%" in lines


def test_label_image_roundtrip(tmp_path):
    labels = np.array([[0, 1, 2], [255, 1, 0]], dtype=np.int32)
    path = str(tmp_path / "labels.png")

    ImageLoader.save_label_image(path, labels)
    loaded = ImageLoader.load_label_image(path, ignore_value=255)

    np.testing.assert_array_equal(loaded, [[0, 1, 2], [-1, 1, 0]])


def test_missing_image(tmp_path):
    with pytest.raises(FileNotFoundError):
        ImageLoader.load_image(str(tmp_path / "missing.png"))
