from collections import namedtuple

import numpy as np

_UMAPParamsBase = namedtuple(
    "UMAPParams",
    [
        "a",
        "b",
        "n_components",
        "negative_sample_rate",
        "repulsion_strength",
        "initial_alpha",
        "n_epochs",
        "callback",
    ],
    defaults=[2, 5, 1.0, 1.0, 0, None],
)


class UMAPParams(_UMAPParamsBase):
    """Immutable configuration for one run of the layout optimizer.

    Parameters
    ----------
    a: float
        More specific parameter controlling the embedding curve.

    b: float
        More specific parameter controlling the embedding curve.

    n_components: int (optional, default 2)
        The dimension of the space to embed into.

    negative_sample_rate: int (optional, default 5)
        The number of negative samples to select per positive sample
        in the optimization process.

    repulsion_strength: float (optional, default 1.0)
        Weighting applied to negative samples in low dimensional embedding
        optimization. Values higher than one will result in greater weight
        being given to negative samples.

    initial_alpha: float (optional, default 1.0)
        The initial learning rate for the embedding optimization.

    n_epochs: int or list of int (optional, default 0)
        The number of training epochs. A value of 0 selects a default based
        on the size of the graph. A list of epochs saves intermediate
        embeddings at those epochs.

    callback: callable (optional, default None)
        Invoked with the embedding at the end of each epoch. Returning
        ``True`` stops the optimization.
    """

    __slots__ = ()

    @classmethod
    def from_spread(cls, spread=1.0, min_dist=0.1, **kwds):
        """Build parameters with ``a`` and ``b`` fitted from ``spread`` and
        ``min_dist`` as in the classic UMAP embedding curve."""
        from umap_layout.umap_ import find_ab_params

        if min_dist > spread:
            raise ValueError("min_dist must be less than or equal to spread")
        if min_dist < 0.0:
            raise ValueError("min_dist cannot be negative")
        a, b = find_ab_params(spread, min_dist)
        return cls(a=a, b=b, **kwds)

    @property
    def n_epochs_max(self):
        if isinstance(self.n_epochs, list):
            return max(self.n_epochs) if len(self.n_epochs) > 0 else 0
        return self.n_epochs


def check_params(params):
    """Validate a ``UMAPParams`` instance, raising ``ValueError`` on the first
    problem found. Returns the (possibly normalized) parameters."""
    if params.a is None or params.b is None:
        raise ValueError("a and b must both be specified")
    if params.a <= 0.0 or params.b <= 0.0:
        raise ValueError("a and b must be positive")
    n_components = params.n_components
    if not isinstance(n_components, (int, np.integer)):
        if isinstance(n_components, str):
            raise ValueError("n_components must be an int")
        if n_components % 1 != 0:
            raise ValueError("n_components must be a whole number")
        n_components = int(n_components)
    if n_components < 1:
        raise ValueError("n_components must be greater than 0")
    negative_sample_rate = params.negative_sample_rate
    if isinstance(negative_sample_rate, (bool, np.bool_, str)) or (
        negative_sample_rate % 1 != 0
    ):
        raise ValueError("negative_sample_rate must be an integer")
    if negative_sample_rate <= 0:
        raise ValueError("negative sample rate must be positive")
    if params.repulsion_strength <= 0.0:
        raise ValueError("repulsion_strength must be positive")
    if params.initial_alpha <= 0.0:
        raise ValueError("learning_rate must be positive")

    n_epochs = params.n_epochs
    if isinstance(n_epochs, (list, tuple, np.ndarray)):
        if not issubclass(
            np.array(n_epochs).dtype.type, np.integer
        ) or not np.all(np.array(n_epochs) >= 0):
            raise ValueError(
                "n_epochs must be a nonnegative integer "
                "or a list of nonnegative integers"
            )
        n_epochs = [int(epoch) for epoch in n_epochs]
    elif n_epochs is None:
        n_epochs = 0
    elif not isinstance(n_epochs, (int, np.integer)) or n_epochs < 0:
        raise ValueError(
            "n_epochs must be a nonnegative integer "
            "or a list of nonnegative integers"
        )
    else:
        n_epochs = int(n_epochs)

    if params.callback is not None and not callable(params.callback):
        raise ValueError("callback must be callable")

    return params._replace(
        n_components=int(n_components),
        negative_sample_rate=int(negative_sample_rate),
        n_epochs=n_epochs,
    )
