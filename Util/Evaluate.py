import numpy as np
from sklearn.metrics import confusion_matrix


class Evaluate:
    @staticmethod
    def _flatten(y_true, y_pred, mask=None):
        y_true_flat = np.asarray(y_true).flatten()
        y_pred_flat = np.asarray(y_pred).flatten()
        if y_true_flat.size != y_pred_flat.size:
            raise ValueError(f"y_true and y_pred sizes differ: {y_true_flat.size} vs {y_pred_flat.size}")

        keep = y_true_flat >= 0
        if mask is not None:
            mask_flat = np.asarray(mask).flatten() != 0
            if mask_flat.size != y_true_flat.size:
                raise ValueError(f"Mask shape incompatible with y_true/y_pred shape after flattening. y_true_flat.size: {y_true_flat.size}, mask_flat.size: {mask_flat.size}")
            keep &= mask_flat
        return y_true_flat[keep], y_pred_flat[keep]

    @staticmethod
    def confusion(y_true, y_pred, num_labels, mask=None):
        """
        Return the (num_labels x num_labels) confusion matrix, rows = truth, columns = prediction.
        Pixels labelled -1 are unlabelled and skipped. If mask is provided, only
        pixels where mask != 0 are evaluated.
        """
        y_true_masked, y_pred_masked = Evaluate._flatten(y_true, y_pred, mask)
        if y_true_masked.size == 0:
            return np.zeros((num_labels, num_labels), dtype=np.int64)
        return confusion_matrix(y_true_masked, y_pred_masked, labels=list(range(num_labels)))

    @staticmethod
    def accuracy(y_true, y_pred, num_labels, mask=None):
        """Fraction of evaluated pixels whose prediction matches the truth."""
        cm = Evaluate.confusion(y_true, y_pred, num_labels, mask)
        total = cm.sum()
        if total == 0:
            return 0.0
        return float(np.trace(cm) / total)

    @staticmethod
    def per_label_recall(y_true, y_pred, num_labels, mask=None):
        """
        Recall of each label (sensitivity for that label against the rest).
        Labels absent from the truth get 0.0.
        """
        cm = Evaluate.confusion(y_true, y_pred, num_labels, mask)
        support = cm.sum(axis=1)
        return np.where(support > 0, np.diag(cm) / np.maximum(support, 1), 0.0)

    @staticmethod
    def average_recall(y_true, y_pred, num_labels, mask=None):
        """Mean recall over labels present in the truth."""
        cm = Evaluate.confusion(y_true, y_pred, num_labels, mask)
        support = cm.sum(axis=1)
        present = support > 0
        if not np.any(present):
            return 0.0
        return float(np.mean(np.diag(cm)[present] / support[present]))

    @staticmethod
    def summary(y_true, y_pred, num_labels, mask=None):
        return {
            'accuracy': Evaluate.accuracy(y_true, y_pred, num_labels, mask),
            'average_recall': Evaluate.average_recall(y_true, y_pred, num_labels, mask),
        }

    @staticmethod
    def print_confusion_matrix(y_true, y_pred, num_labels, label_names=None, mask=None):
        """
        Calls the confusion method and prints the confusion matrix in a readable format.
        """
        cm = Evaluate.confusion(y_true, y_pred, num_labels, mask)
        names = label_names or [str(i) for i in range(num_labels)]
        width = max(8, max(len(n) for n in names) + 2)
        print("Confusion Matrix:")
        print(" " * width + "".join(f"{n:>{width}}" for n in names))
        for name, row in zip(names, cm):
            print(f"{name:>{width}}" + "".join(f"{v:>{width}}" for v in row))
