# ===========================
#  Testing (session) Fixture
# ==========================

import pytest
import numpy as np
import scipy.sparse

from umap_layout import UMAPParams

# Globals, used for all the tests
SEED = 189212  # 0b101110001100011100
np.random.seed(SEED)

# Curve parameters for spread=1.0, min_dist=0.1
A = 1.5769434603113077
B = 0.8950608779109733


def ring_graph(n_vertices, weight=1.0):
    rows = np.arange(n_vertices)
    cols = (rows + 1) % n_vertices
    graph = scipy.sparse.coo_matrix(
        (np.full(n_vertices, weight), (rows, cols)), shape=(n_vertices, n_vertices)
    )
    return graph.maximum(graph.T).tocoo()


# Graphs
# ------
@pytest.fixture(scope="session")
def ring():
    return ring_graph(20)


@pytest.fixture(scope="session")
def two_cliques():
    # Two fully connected groups of 10 vertices with no edges between them
    block = np.ones((10, 10)) - np.eye(10)
    dense = np.zeros((20, 20))
    dense[:10, :10] = block
    dense[10:, 10:] = block
    return scipy.sparse.coo_matrix(dense)


@pytest.fixture(scope="session")
def random_graph():
    graph = scipy.sparse.random(
        200, 200, density=0.05, format="coo", random_state=SEED
    )
    return graph.maximum(graph.T).tocoo()


# Initial embeddings
# ------------------
@pytest.fixture
def ring_init():
    return np.random.RandomState(SEED).uniform(-10, 10, size=(20, 2)).astype(
        np.float32
    )


@pytest.fixture
def random_graph_init():
    return np.random.RandomState(SEED).uniform(-10, 10, size=(200, 2)).astype(
        np.float32
    )


# Parameters
# ----------
@pytest.fixture(scope="session")
def params():
    return UMAPParams(a=A, b=B, n_components=2, n_epochs=50)
