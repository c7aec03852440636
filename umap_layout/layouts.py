import numba
import numpy as np
from tqdm.auto import tqdm

from umap_layout.utils import counter_rand_int, ts


@numba.njit(inline="always")
def clip(val, lo, hi):
    """Standard clamping of a value into a fixed range (in the optimizer -4.0
    to 4.0)

    Parameters
    ----------
    val: float
        The value to be clamped.

    lo: float
        The lower bound.

    hi: float
        The upper bound.

    Returns
    -------
    The clamped value, now fixed to be in the range lo to hi.
    """
    if val > hi:
        return hi
    elif val < lo:
        return lo
    else:
        return val


@numba.njit(fastmath=True, cache=True)
def rdist(x, y):
    """Reduced Euclidean distance.

    Parameters
    ----------
    x: array of shape (embedding_dim,)
    y: array of shape (embedding_dim,)

    Returns
    -------
    The squared euclidean distance between x and y
    """
    result = 0.0
    dim = x.shape[0]
    for i in range(dim):
        diff = x[i] - y[i]
        result += diff * diff

    return result


@numba.njit(cache=True)
def attractive_grad_coeff(dist_squared, a, b):
    """Coefficient of the attractive force between two vertices joined by an
    edge, as a function of their squared distance. Coincident points exert no
    attractive force on each other.
    """
    if dist_squared <= 0.0:
        return 0.0
    grad_coeff = -2.0 * a * b * pow(dist_squared, b - 1.0)
    grad_coeff /= a * pow(dist_squared, b) + 1.0
    return grad_coeff


@numba.njit(cache=True)
def repulsive_grad_coeff(dist_squared, gamma, a, b):
    """Coefficient of the repulsive force between a vertex and a negative
    sample, as a function of their squared distance. Zero for coincident
    points; the caller decides how to separate those.
    """
    if dist_squared <= 0.0:
        return 0.0
    grad_coeff = 2.0 * gamma * b
    grad_coeff /= (0.001 + dist_squared) * (a * pow(dist_squared, b) + 1.0)
    return grad_coeff


def _optimize_layout_euclidean_single_epoch(
    head_embedding,
    tail_embedding,
    head,
    tail,
    n_vertices,
    epochs_per_sample,
    a,
    b,
    seed,
    gamma,
    dim,
    move_other,
    alpha,
    epochs_per_negative_sample,
    epoch_of_next_negative_sample,
    epoch_of_next_sample,
    n,
    updates,
):
    # The embeddings are only read here. Each edge writes its displacements
    # into its own rows of ``updates``: row i for the head vertex and, when
    # move_other is set, row i + n_edges for the tail vertex.
    # Sample times are compared against the number of epochs elapsed once
    # epoch n completes.
    clock = n + 1.0
    n_edges = epochs_per_sample.shape[0]
    for i in numba.prange(n_edges):
        for d in range(dim):
            updates[i, d] = 0.0
            if move_other:
                updates[i + n_edges, d] = 0.0

        if epochs_per_sample[i] <= 0.0 or epoch_of_next_sample[i] > clock:
            continue

        j = head[i]
        k = tail[i]

        current = head_embedding[j]
        other = tail_embedding[k]

        dist_squared = rdist(current, other)
        grad_coeff = attractive_grad_coeff(dist_squared, a, b)

        for d in range(dim):
            grad_d = clip(grad_coeff * (current[d] - other[d]), -4.0, 4.0)
            updates[i, d] += grad_d * alpha
            if move_other:
                updates[i + n_edges, d] += -grad_d * alpha

        epoch_of_next_sample[i] += epochs_per_sample[i]

        n_neg_samples = int(
            (clock - epoch_of_next_negative_sample[i]) / epochs_per_negative_sample[i]
        )
        if n_neg_samples < 0:
            n_neg_samples = 0

        for p in range(n_neg_samples):
            k = counter_rand_int(seed, i, p) % n_vertices

            # In fit mode the head vertex sampling itself is always at
            # distance zero from its own (updated) position.
            if move_other and k == j:
                continue

            other = tail_embedding[k]

            dist_squared = 0.0
            for d in range(dim):
                diff = current[d] + updates[i, d] - other[d]
                dist_squared += diff * diff

            if dist_squared > 0.0:
                grad_coeff = repulsive_grad_coeff(dist_squared, gamma, a, b)
            elif j == k:
                continue
            else:
                grad_coeff = 0.0

            for d in range(dim):
                if grad_coeff > 0.0:
                    grad_d = clip(
                        grad_coeff * (current[d] + updates[i, d] - other[d]),
                        -4.0,
                        4.0,
                    )
                else:
                    grad_d = 4.0
                updates[i, d] += grad_d * alpha

        epoch_of_next_negative_sample[i] += (
            n_neg_samples * epochs_per_negative_sample[i]
        )


_nb_optimize_layout_euclidean_single_epoch = numba.njit(
    _optimize_layout_euclidean_single_epoch, fastmath=True, parallel=False
)

_nb_optimize_layout_euclidean_single_epoch_parallel = numba.njit(
    _optimize_layout_euclidean_single_epoch, fastmath=True, parallel=True
)


def _get_optimize_layout_euclidean_single_epoch_fn(parallel: bool = False):
    if parallel:
        return _nb_optimize_layout_euclidean_single_epoch_parallel
    else:
        return _nb_optimize_layout_euclidean_single_epoch


@numba.njit(parallel=True, cache=True)
def apply_updates(embedding, updates, indptr, order):
    """Add buffered per-edge displacements into the embedding. Each vertex
    is owned by exactly one parallel iteration, which sums the
    contributions addressed to it in a fixed order, so no two iterations
    write the same row.

    Parameters
    ----------
    embedding: array of shape (n_vertices, dim)
        The embedding to update in place.

    updates: array of shape (n_updates, dim)
        The displacement rows produced by the edge kernel.

    indptr: array of shape (n_vertices + 1,)
        For vertex ``v`` the entries ``order[indptr[v]:indptr[v + 1]]``
        are the rows of ``updates`` that target ``v``.

    order: array of shape (n_updates,)
        Rows of ``updates`` grouped by target vertex.
    """
    dim = embedding.shape[1]
    for v in numba.prange(embedding.shape[0]):
        for idx in range(indptr[v], indptr[v + 1]):
            row = order[idx]
            for d in range(dim):
                embedding[v, d] += updates[row, d]


def make_update_index(head, tail, n_rows, move_other):
    """Group update rows by the embedding row they target.

    Parameters
    ----------
    head: array of shape (n_1_simplices)
        The indices of the heads of 1-simplices.

    tail: array of shape (n_1_simplices)
        The indices of the tails of 1-simplices.

    n_rows: int
        The number of rows of the embedding being updated.

    move_other: bool
        Whether tail vertices receive updates as well.

    Returns
    -------
    indptr: array of shape (n_rows + 1,)
    order: array of shape (n_updates,)
    """
    if move_other:
        targets = np.concatenate((head, tail)).astype(np.intp)
    else:
        targets = np.asarray(head, dtype=np.intp)
    order = np.argsort(targets, kind="stable")
    indptr = np.zeros(n_rows + 1, dtype=np.intp)
    np.cumsum(np.bincount(targets, minlength=n_rows), out=indptr[1:])
    return indptr, order


def make_alpha_schedule(initial_alpha, n_epochs):
    """The learning rate used in each epoch; linear decay from
    ``initial_alpha`` that never quite reaches zero.
    """
    return np.linspace(initial_alpha, 0.0, n_epochs, endpoint=False)


def optimize_layout_euclidean(
    head_embedding,
    tail_embedding,
    head,
    tail,
    n_epochs,
    n_vertices,
    epochs_per_sample,
    a,
    b,
    seed,
    gamma=1.0,
    initial_alpha=1.0,
    negative_sample_rate=5.0,
    parallel=True,
    verbose=False,
    tqdm_kwds=None,
    callback=None,
):
    """Improve an embedding using stochastic gradient descent to minimize the
    fuzzy set cross entropy between the 1-skeletons of the high dimensional
    and low dimensional fuzzy simplicial sets. In practice this is done by
    sampling edges based on their membership strength (with the (1-p) terms
    coming from negative sampling similar to word2vec).

    Parameters
    ----------
    head_embedding: array of shape (n_samples, n_components)
        The initial embedding to be improved by SGD. It is updated in place.
    tail_embedding: array of shape (source_samples, n_components)
        The reference embedding of embedded points. If not embedding new
        previously unseen points with respect to an existing embedding this
        is simply the head_embedding (again); otherwise it provides the
        existing embedding to embed with respect to, and is left untouched.
    head: array of shape (n_1_simplices)
        The indices of the heads of 1-simplices with non-zero membership.
    tail: array of shape (n_1_simplices)
        The indices of the tails of 1-simplices with non-zero membership.
    n_epochs: int, or list of int
        The number of training epochs to use in optimization, or a list of
        epochs at which to save the embedding. In case of a list, the optimization
        will use the maximum number of epochs in the list, and will return a list
        of embedding in the order of increasing epoch, regardless of the order in
        the epoch list.
    n_vertices: int
        The number of vertices of the tail embedding; negative samples are
        drawn from this range.
    epochs_per_sample: array of shape (n_1_simplices)
        A float value of the number of epochs per 1-simplex. 1-simplices with
        weaker membership strength will have more epochs between being sampled.
        Non-positive values mark 1-simplices that are never sampled.
    a: float
        Parameter of differentiable approximation of right adjoint functor
    b: float
        Parameter of differentiable approximation of right adjoint functor
    seed: int
        Seed of the counter based random number generator used for negative
        sampling. Each epoch derives its own seed from it.
    gamma: float (optional, default 1.0)
        Weight to apply to negative samples.
    initial_alpha: float (optional, default 1.0)
        Initial learning rate for the SGD.
    negative_sample_rate: int (optional, default 5)
        Number of negative samples to use per positive sample.
    parallel: bool (optional, default True)
        Whether to run the computation using numba parallel. The result
        does not depend on this setting.
    verbose: bool (optional, default False)
        Whether to report information on the current progress of the algorithm.
    tqdm_kwds: dict (optional, default None)
        Keyword arguments for tqdm progress bar.
    callback: callable (optional, default None)
        Called with ``head_embedding`` at the end of every epoch. If it
        returns ``True`` the optimization stops at that epoch boundary.

    Returns
    -------
    embedding: array of shape (n_samples, n_components)
        The optimized embedding.
    """

    dim = head_embedding.shape[1]
    move_other = head_embedding is tail_embedding
    n_edges = epochs_per_sample.shape[0]

    epochs_per_negative_sample = epochs_per_sample / negative_sample_rate
    epoch_of_next_negative_sample = epochs_per_negative_sample.copy()
    epoch_of_next_sample = epochs_per_sample.copy()

    n_updates = 2 * n_edges if move_other else n_edges
    updates = np.zeros((n_updates, dim), dtype=head_embedding.dtype)
    indptr, order = make_update_index(
        head, tail, head_embedding.shape[0], move_other
    )

    optimize_fn = _get_optimize_layout_euclidean_single_epoch_fn(parallel)

    epochs_list = None
    embedding_list = []
    if isinstance(n_epochs, list):
        epochs_list = n_epochs
        n_epochs = max(epochs_list) if len(epochs_list) > 0 else 0

    if tqdm_kwds is None:
        tqdm_kwds = {}

    if "disable" not in tqdm_kwds:
        tqdm_kwds["disable"] = not verbose

    alpha_schedule = make_alpha_schedule(initial_alpha, n_epochs)

    for n in tqdm(range(n_epochs), **tqdm_kwds):
        epoch_seed = counter_rand_int(seed, n, 0)

        if n_edges > 0:
            try:
                optimize_fn(
                    head_embedding,
                    tail_embedding,
                    head,
                    tail,
                    n_vertices,
                    epochs_per_sample,
                    a,
                    b,
                    epoch_seed,
                    gamma,
                    dim,
                    move_other,
                    alpha_schedule[n],
                    epochs_per_negative_sample,
                    epoch_of_next_negative_sample,
                    epoch_of_next_sample,
                    n,
                    updates,
                )
                apply_updates(head_embedding, updates, indptr, order)
            except Exception as e:
                raise RuntimeError(
                    "Layout optimization failed during epoch {}".format(n)
                ) from e

        if epochs_list is not None and n in epochs_list:
            embedding_list.append(head_embedding.copy())

        if callback is not None and callback(head_embedding) is True:
            if verbose:
                print(ts(), "Optimization stopped by callback after epoch", n)
            break

    # Add the last embedding to the list as well
    if epochs_list is not None:
        embedding_list.append(head_embedding.copy())

    return head_embedding if epochs_list is None else embedding_list
