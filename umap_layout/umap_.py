# Author: Leland McInnes <leland.mcinnes@gmail.com>
#
# License: BSD 3 clause

from warnings import warn

from scipy.optimize import curve_fit
from sklearn.base import BaseEstimator
from sklearn.utils import check_random_state, check_array
from sklearn.utils.validation import check_is_fitted

import numpy as np
import scipy.sparse

from umap_layout.layouts import optimize_layout_euclidean
from umap_layout.params import UMAPParams, check_params
from umap_layout.utils import clock_seed, disconnected_vertices, ts

INT32_MAX = np.iinfo(np.int32).max - 1


def default_n_epochs(n_vertices):
    """For smaller graphs we can afford more epochs."""
    if n_vertices <= 10000:
        return 500
    else:
        return 200


def make_epochs_per_sample(weights, n_epochs):
    """Given a set of weights and number of epochs generate the number of
    epochs per sample for each weight.

    Parameters
    ----------
    weights: array of shape (n_1_simplices)
        The weights of how much we wish to sample each 1-simplex.

    n_epochs: int
        The total number of epochs we want to train for.

    Returns
    -------
    An array of number of epochs per sample, one for each 1-simplex. Entries
    of -1 mark 1-simplices that should never be sampled.
    """
    result = -1.0 * np.ones(weights.shape[0], dtype=np.float64)
    if weights.shape[0] == 0:
        return result
    n_samples = n_epochs * (weights / weights.max())
    result[n_samples > 0] = float(n_epochs) / np.float64(n_samples[n_samples > 0])
    return result


def remove_zeros(graph):
    """Return a new COO matrix holding only the non-zero entries of
    ``graph``; ``nnz`` of the result may be smaller than the input's."""
    result = scipy.sparse.coo_matrix(graph, copy=True)
    result.eliminate_zeros()
    return result


def prune_edges(graph, n_epochs):
    """Zero out, in place, the weights of 1-simplices too weak to ever be
    sampled within ``n_epochs`` epochs, i.e. those strictly below
    ``max_weight / n_epochs``. The comparison is made in double precision."""
    if graph.nnz == 0:
        return graph
    weights = graph.data.astype(np.float64)
    graph.data[weights < (weights.max() / float(n_epochs))] = 0.0
    return graph


def _prepare_graph(graph):
    """Float32 COO copy of ``graph`` with repeated coordinates summed."""
    if not scipy.sparse.issparse(graph):
        raise ValueError("graph must be a scipy sparse matrix")
    graph = scipy.sparse.coo_matrix(graph, dtype=np.float32, copy=True)
    graph.sum_duplicates()
    if graph.nnz > 0 and graph.data.min() < 0.0:
        raise ValueError("graph weights cannot be negative")
    return graph


def _check_embedding(embedding, n_rows, n_components, name="embedding"):
    if not isinstance(embedding, np.ndarray) or embedding.ndim != 2:
        raise ValueError("{} must be a 2D numpy array".format(name))
    if not np.issubdtype(embedding.dtype, np.floating):
        raise ValueError("{} must have a floating point dtype".format(name))
    if embedding.shape[0] != n_rows:
        raise ValueError(
            "{} has {} rows but the graph requires {}".format(
                name, embedding.shape[0], n_rows
            )
        )
    if embedding.shape[1] != n_components:
        raise ValueError(
            "{} must have n_components={} columns".format(name, n_components)
        )


def _resolve_seed(random_state):
    if random_state is None:
        return clock_seed()
    random_state = check_random_state(random_state)
    return int(random_state.randint(INT32_MAX))


def _warn_if_not_finite(embedding):
    if not np.all(np.isfinite(embedding)):
        warn(
            "The optimized embedding contains non-finite values. "
            "Consider a smaller learning rate or checking the graph weights."
        )


def simplicial_set_embedding(
    graph,
    embedding,
    params,
    random_state=None,
    parallel=True,
    verbose=False,
    tqdm_kwds=None,
):
    """Perform a fuzzy simplicial set embedding, using a specified
    initialisation method and then minimizing the fuzzy set cross entropy
    between the 1-skeletons of the high and low dimensional fuzzy simplicial
    sets.

    Parameters
    ----------
    graph: sparse matrix of shape (n_samples, n_samples)
        The 1-skeleton of the high dimensional fuzzy simplicial set as
        represented by a graph for which we require a sparse matrix for the
        (weighted) adjacency matrix.
        Repeated coordinates are summed into a single edge.

    embedding: array of shape (n_samples, n_components)
        The initial embedding. It is optimized in place.

    params: UMAPParams
        The optimization parameters. An ``n_epochs`` of 0 selects 500 epochs
        for graphs of up to 10000 vertices and 200 otherwise.

    random_state: int, RandomState instance or None (optional, default None)
        Source of the seed for negative sampling. If None the seed is taken
        from the wall clock and results are not reproducible.

    parallel: bool (optional, default True)
        Whether to run the computation using numba parallel.

    verbose: bool (optional, default False)
        Whether to report information on the current progress of the algorithm.

    tqdm_kwds: dict
        Key word arguments to be used by the tqdm progress bar.

    Returns
    -------
    embedding: array of shape (n_samples, n_components)
        The optimized of ``graph`` into an ``n_components`` dimensional
        euclidean space; the same object as was passed in.

    aux_data: dict
        Auxiliary output returned with the embedding: the number of epochs
        run (``n_epochs``), the ``head``, ``tail`` and ``epochs_per_sample``
        arrays of the pruned graph and, if ``n_epochs`` was a list, the
        intermediate embeddings (``embedding_list``).
    """
    params = check_params(params)
    graph = _prepare_graph(graph)
    if graph.shape[0] != graph.shape[1]:
        raise ValueError("graph must be square when embedding a single dataset")
    n_vertices = graph.shape[1]
    _check_embedding(embedding, n_vertices, params.n_components)

    n_epochs = params.n_epochs
    if isinstance(n_epochs, list):
        n_epochs_max = max(n_epochs) if len(n_epochs) > 0 else 0
    else:
        if n_epochs <= 0:
            n_epochs = default_n_epochs(n_vertices)
        n_epochs_max = n_epochs

    if n_epochs_max > 0:
        prune_edges(graph, n_epochs_max)
    graph = remove_zeros(graph)

    if verbose:
        print(ts(), "Pruned graph to", graph.nnz, "edges")

    n_disconnected = int(disconnected_vertices(graph).sum())
    if n_disconnected > 0:
        warn(
            "{} of {} vertices have no edges and will not be moved by the "
            "optimization. Use umap_layout.utils.disconnected_vertices() to "
            "identify them.".format(n_disconnected, n_vertices)
        )

    epochs_per_sample = make_epochs_per_sample(graph.data, n_epochs_max)

    if verbose:
        if epochs_per_sample.shape[0] > 0:
            print(
                ts(),
                "epochs_per_sample ranges from",
                epochs_per_sample.min(),
                "to",
                epochs_per_sample.max(),
            )
        print(ts(), "Optimizing layout for", n_epochs_max, "epochs")

    head = graph.row
    tail = graph.col

    seed = _resolve_seed(random_state)

    result = optimize_layout_euclidean(
        embedding,
        embedding,
        head,
        tail,
        n_epochs,
        n_vertices,
        epochs_per_sample,
        params.a,
        params.b,
        seed,
        gamma=params.repulsion_strength,
        initial_alpha=params.initial_alpha,
        negative_sample_rate=params.negative_sample_rate,
        parallel=parallel,
        verbose=verbose,
        tqdm_kwds=tqdm_kwds,
        callback=params.callback,
    )

    aux_data = {
        "n_epochs": n_epochs_max,
        "head": head,
        "tail": tail,
        "epochs_per_sample": epochs_per_sample,
    }
    if isinstance(result, list):
        aux_data["embedding_list"] = result

    _warn_if_not_finite(embedding)

    if verbose:
        print(ts(), "Finished optimizing layout")

    return embedding, aux_data


def simplicial_set_transform(
    graph,
    embedding,
    reference_embedding,
    params,
    random_state=None,
    parallel=True,
    verbose=False,
    tqdm_kwds=None,
):
    """Embed new points with respect to a fixed, already optimized reference
    embedding. Only the new points move.

    Parameters
    ----------
    graph: sparse matrix of shape (n_new_samples, n_samples)
        The bipartite 1-skeleton linking new points (rows) to reference
        points (columns).
        Repeated coordinates are summed into a single edge.

    embedding: array of shape (n_new_samples, n_components)
        The initial embedding of the new points. It is optimized in place.

    reference_embedding: array of shape (n_samples, n_components)
        The embedding to embed with respect to. It is never modified.

    params: UMAPParams
        The optimization parameters. An ``n_epochs`` of 0 selects 100 epochs
        for up to 10000 new points and 30 otherwise; any other value is
        divided by 3. The learning rate used is ``initial_alpha / 4``.

    random_state: int, RandomState instance or None (optional, default None)
        Source of the seed for negative sampling.

    parallel: bool (optional, default True)
        Whether to run the computation using numba parallel.

    verbose: bool (optional, default False)
        Whether to report information on the current progress of the algorithm.

    tqdm_kwds: dict
        Key word arguments to be used by the tqdm progress bar.

    Returns
    -------
    embedding: array of shape (n_new_samples, n_components)
    aux_data: dict
    """
    params = check_params(params)
    graph = _prepare_graph(graph)
    _check_embedding(embedding, graph.shape[0], params.n_components)
    _check_embedding(
        reference_embedding,
        graph.shape[1],
        params.n_components,
        name="reference_embedding",
    )
    if embedding is reference_embedding:
        raise ValueError("embedding and reference_embedding must be distinct arrays")

    n_epochs = params.n_epochs_max
    if n_epochs <= 0:
        if graph.shape[0] <= 10000:
            n_epochs = 100
        else:
            n_epochs = 30
    else:
        n_epochs = max(int(n_epochs // 3.0), 1)

    prune_edges(graph, n_epochs)
    graph = remove_zeros(graph)

    epochs_per_sample = make_epochs_per_sample(graph.data, n_epochs)

    if verbose:
        print(ts(), "Embedding", graph.shape[0], "new points for", n_epochs, "epochs")

    head = graph.row
    tail = graph.col

    seed = _resolve_seed(random_state)

    optimize_layout_euclidean(
        embedding,
        reference_embedding,
        head,
        tail,
        n_epochs,
        graph.shape[1],
        epochs_per_sample,
        params.a,
        params.b,
        seed,
        gamma=params.repulsion_strength,
        initial_alpha=params.initial_alpha / 4.0,
        negative_sample_rate=params.negative_sample_rate,
        parallel=parallel,
        verbose=verbose,
        tqdm_kwds=tqdm_kwds,
        callback=params.callback,
    )

    _warn_if_not_finite(embedding)

    aux_data = {
        "n_epochs": n_epochs,
        "head": head,
        "tail": tail,
        "epochs_per_sample": epochs_per_sample,
    }
    return embedding, aux_data


def init_graph_transform(graph, embedding):
    """Given a bipartite graph representing the 1-simplices and strengths between the
    new points and the original data set along with an embedding of the original points
    initialize the positions of new points relative to the strengths (of their neighbors in the source data).

    If a point is in our original data set it embeds at the original points coordinates.
    If a point has no neighbours in our original dataset it embeds as the np.nan vector.
    Otherwise a point is the weighted average of it's neighbours embedding locations.

    Parameters
    ----------
    graph: csr_matrix (n_new_samples, n_samples)
        A matrix indicating the 1-simplices and their associated strengths.  These strengths should
        be values between zero and one and not normalized.  One indicating that the new point was identical
        to one of our original points.

    embedding: array of shape (n_samples, dim)
        The original embedding of the source data.

    Returns
    -------
    new_embedding: array of shape (n_new_samples, dim)
        An initial embedding of the new sample points.
    """
    graph = scipy.sparse.csr_matrix(graph)
    graph.eliminate_zeros()
    result = np.zeros((graph.shape[0], embedding.shape[1]), dtype=np.float32)

    for row_index in range(graph.shape[0]):
        graph_row = graph[row_index]
        if graph_row.nnz == 0:
            result[row_index] = np.nan
            continue
        row_sum = graph_row.sum()
        for graph_value, col_index in zip(graph_row.data, graph_row.indices):
            if graph_value == 1:
                result[row_index, :] = embedding[col_index, :]
                break
            result[row_index] += graph_value / row_sum * embedding[col_index]

    return result


def find_ab_params(spread, min_dist):
    """Fit a, b params for the differentiable curve used in lower
    dimensional fuzzy simplicial complex construction. We want the
    smooth curve (from a pre-defined family with simple gradient) that
    best matches an offset exponential decay.
    """

    def curve(x, a, b):
        return 1.0 / (1.0 + a * x ** (2 * b))

    xv = np.linspace(0, spread * 3, 300)
    yv = np.zeros(xv.shape)
    yv[xv < min_dist] = 1.0
    yv[xv >= min_dist] = np.exp(-(xv[xv >= min_dist] - min_dist) / spread)
    params, covar = curve_fit(curve, xv, yv)
    return params[0], params[1]


class LayoutOptimizer(BaseEstimator):
    """Optimize a low dimensional layout of a weighted graph with the UMAP
    stochastic gradient descent, alternately attracting vertices joined by
    an edge and repelling randomly sampled vertices.

    Parameters
    ----------
    n_components: int (optional, default 2)
        The dimension of the space to embed into.

    n_epochs: int or list of int (optional, default None)
        The number of training epochs to be used in optimizing the
        low dimensional embedding. Larger values result in more accurate
        embeddings. If None a value will be selected based on the size of
        the graph (500 for small graphs, 200 for large). If a list of
        integers is given the embeddings at those epochs are stored in
        ``embedding_list_``.

    learning_rate: float (optional, default 1.0)
        The initial learning rate for the embedding optimization.

    repulsion_strength: float (optional, default 1.0)
        Weighting applied to negative samples in low dimensional embedding
        optimization.

    negative_sample_rate: int (optional, default 5)
        The number of negative samples to select per positive sample
        in the optimization process.

    a: float (optional, default None)
        More specific parameters controlling the embedding. If None these
        values are set automatically as determined by ``min_dist`` and
        ``spread``.

    b: float (optional, default None)
        More specific parameters controlling the embedding. If None these
        values are set automatically as determined by ``min_dist`` and
        ``spread``.

    spread: float (optional, default 1.0)
        The effective scale of embedded points.

    min_dist: float (optional, default 0.1)
        The effective minimum distance between embedded points.

    random_state: int, RandomState instance or None, optional (default: None)
        Seed source for negative sampling. If None, the wall clock is used.

    callback: callable (optional, default None)
        Called with the embedding after each epoch; returning ``True``
        stops the optimization.

    parallel: bool (optional, default True)
        Whether to run the edge updates with numba parallel.

    verbose: bool (optional, default False)
        Controls verbosity of logging.

    tqdm_kwds: dict (optional, default None)
        Key word arguments to be used by the tqdm progress bar.
    """

    def __init__(
        self,
        n_components=2,
        n_epochs=None,
        learning_rate=1.0,
        repulsion_strength=1.0,
        negative_sample_rate=5,
        a=None,
        b=None,
        spread=1.0,
        min_dist=0.1,
        random_state=None,
        callback=None,
        parallel=True,
        verbose=False,
        tqdm_kwds=None,
    ):
        self.n_components = n_components
        self.n_epochs = n_epochs
        self.learning_rate = learning_rate
        self.repulsion_strength = repulsion_strength
        self.negative_sample_rate = negative_sample_rate
        self.a = a
        self.b = b
        self.spread = spread
        self.min_dist = min_dist
        self.random_state = random_state
        self.callback = callback
        self.parallel = parallel
        self.verbose = verbose
        self.tqdm_kwds = tqdm_kwds

    def _validate_parameters(self):
        if self.min_dist > self.spread:
            raise ValueError("min_dist must be less than or equal to spread")
        if self.min_dist < 0.0:
            raise ValueError("min_dist cannot be negative")
        if self.learning_rate <= 0.0:
            raise ValueError("learning_rate must be positive")

        if self.a is None or self.b is None:
            self._a, self._b = find_ab_params(self.spread, self.min_dist)
        else:
            self._a = self.a
            self._b = self.b

        n_epochs = self.n_epochs
        if isinstance(n_epochs, (tuple, np.ndarray)):
            n_epochs = list(n_epochs)

        return check_params(
            UMAPParams(
                a=self._a,
                b=self._b,
                n_components=self.n_components,
                negative_sample_rate=self.negative_sample_rate,
                repulsion_strength=self.repulsion_strength,
                initial_alpha=self.learning_rate,
                n_epochs=0 if n_epochs is None else n_epochs,
                callback=self.callback,
            )
        )

    def _tqdm_kwds(self):
        tqdm_kwds = {} if self.tqdm_kwds is None else dict(self.tqdm_kwds)
        tqdm_kwds.setdefault("desc", "Epochs completed")
        return tqdm_kwds

    def fit(self, graph, init):
        """Optimize a layout of ``graph`` starting from ``init``.

        Parameters
        ----------
        graph: sparse matrix of shape (n_samples, n_samples)
            The weighted graph of 1-simplices.

        init: array of shape (n_samples, n_components)
            The initial embedding. It is copied, not modified.
        """
        params = self._validate_parameters()
        if not scipy.sparse.issparse(graph):
            raise ValueError("graph must be a scipy sparse matrix")
        self.graph_ = graph.tocoo()
        self.embedding_ = check_array(init, dtype=np.float32, order="C", copy=True)

        if self.verbose:
            print(ts(), "Construct embedding")

        self.embedding_, aux_data = simplicial_set_embedding(
            self.graph_,
            self.embedding_,
            params,
            random_state=self.random_state,
            parallel=self.parallel,
            verbose=self.verbose,
            tqdm_kwds=self._tqdm_kwds(),
        )
        self.n_epochs_ = aux_data["n_epochs"]
        if "embedding_list" in aux_data:
            self.embedding_list_ = aux_data["embedding_list"]

        return self

    def fit_transform(self, graph, init):
        """Optimize a layout of ``graph`` and return it.

        Parameters
        ----------
        graph: sparse matrix of shape (n_samples, n_samples)
        init: array of shape (n_samples, n_components)

        Returns
        -------
        embedding: array of shape (n_samples, n_components)
        """
        self.fit(graph, init)
        return self.embedding_

    def transform(self, graph, init=None):
        """Embed new points against the fitted embedding.

        Parameters
        ----------
        graph: sparse matrix of shape (n_new_samples, n_samples)
            Bipartite graph linking the new points to the fitted ones.

        init: array of shape (n_new_samples, n_components) (optional)
            Initial positions of the new points. If None each new point
            starts at the weighted average of the fitted positions of its
            neighbours.

        Returns
        -------
        embedding: array of shape (n_new_samples, n_components)
        """
        check_is_fitted(self, "embedding_")
        params = self._validate_parameters()
        if isinstance(params.n_epochs, list):
            params = params._replace(n_epochs=params.n_epochs_max)

        if init is None:
            init = init_graph_transform(graph, self.embedding_)
            if np.any(np.isnan(init)):
                raise ValueError(
                    "Some new points have no edges to the fitted points; "
                    "an explicit init is required to embed them"
                )
        embedding = check_array(init, dtype=np.float32, order="C", copy=True)

        embedding, _ = simplicial_set_transform(
            graph,
            embedding,
            self.embedding_.copy(),
            params,
            random_state=self.random_state,
            parallel=self.parallel,
            verbose=self.verbose,
            tqdm_kwds=self._tqdm_kwds(),
        )
        return embedding
