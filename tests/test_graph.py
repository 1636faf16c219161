from dataclasses import dataclass, field

import numpy as np
import pytest

from gradflow.ir import Graph, Tensor, Variable
from gradflow.ir.errors import (
    InvalidArgumentError,
    MissingDataError,
    OutOfRangeError,
    StructuralError,
)
from gradflow.ops import Add, MatMul, Op, ReLU


@dataclass(eq=False)
class Scale(Op):
    """Toy elementwise op that records every backward call."""

    factor: float = 1.0
    calls: list = field(default_factory=list)

    def forward(self, inputs) -> None:
        self._check_arity(inputs)
        x = self._data(inputs[0])
        self._emit(Tensor(x.array * self.factor))

    def backward(self, inputs, focus, gradient) -> Tensor:
        self.calls.append(focus.name)
        return Tensor(gradient.array * self.factor)


@dataclass(eq=False)
class WrongShape(Op):
    def forward(self, inputs) -> None:
        self._emit(Tensor(self._data(inputs[0]).array.copy()))

    def backward(self, inputs, focus, gradient) -> Tensor:
        return Tensor.zeros((7,))


def assert_topological(g: Graph) -> None:
    position = {v.id: i for i, v in enumerate(g.topo_sort())}
    assert len(position) == len(g.variables)
    for v in g.variables:
        for child in v.consumers:
            assert position[v.id] < position[child], f"{v.name} must precede {g.variables[child].name}"


# =============================================================================
# Construction
# =============================================================================


def test_add_variable_assigns_sequential_ids_and_binds_op() -> None:
    g = Graph(name="ids")
    a = g.input("a", [[1.0]])
    op = ReLU()
    r = g.add_variable(Variable(op=op, inputs=[a.id]))
    assert [v.id for v in g.variables] == [0, 1]
    assert op.output is r
    assert a.consumers == [r.id]
    assert r.inputs == [a.id]
    assert r.name == "relu1"


def test_uids_are_process_unique() -> None:
    g1 = Graph(name="g1")
    g2 = Graph(name="g2")
    a = g1.input("a")
    b = g2.input("b")
    assert a.id == b.id == 0
    assert a.uid != b.uid


def test_connect_links_both_sides() -> None:
    g = Graph(name="wire")
    r = g.add_variable(Variable(op=ReLU(), name="r"))
    x = g.input("x", [[-1.0, 2.0]])
    g.connect(x, r)
    assert r.inputs == [x.id]
    assert x.consumers == [r.id]
    assert g.inputs_of(r) == [x]
    assert g.consumers_of(x) == [r]


def test_leaf_cannot_take_inputs() -> None:
    g = Graph(name="leaf")
    a = g.input("a")
    b = g.input("b")
    with pytest.raises(InvalidArgumentError):
        g.connect(a, b)
    with pytest.raises(InvalidArgumentError):
        Variable(inputs=[0])


def test_registration_is_checked() -> None:
    g = Graph(name="reg")
    a = g.input("a")
    with pytest.raises(InvalidArgumentError):
        g.add_variable(a)
    op = ReLU()
    g.apply(op, a)
    with pytest.raises(InvalidArgumentError):
        g.add_variable(Variable(op=op, inputs=[a.id]))
    with pytest.raises(OutOfRangeError):
        g.add_variable(Variable(op=ReLU(), inputs=[42]))


def test_cannot_mix_variables_from_different_graphs() -> None:
    g1 = Graph(name="g1")
    g2 = Graph(name="g2")
    a = g1.input("a", [[1.0]])
    b = g2.param("b", [[1.0]])
    with pytest.raises(InvalidArgumentError):
        g1.matmul(a, b)


def test_add_output_is_idempotent() -> None:
    g = Graph(name="out")
    x = g.input("x", [[1.0]])
    y = g.relu(x)
    assert g.add_output(y) == 0
    assert g.add_output(y) == 0
    assert g.outputs == [y.id]
    with pytest.raises(MissingDataError):
        g.get_output(0)
    with pytest.raises(OutOfRangeError):
        g.get_output(1)
    g.forward()
    assert g.get_output(0).tolist() == [[1.0]]


# =============================================================================
# Topological order and forward
# =============================================================================


def test_topo_sort_chain() -> None:
    g = Graph(name="chain")
    x = g.input("x", [[1.0]])
    h = g.relu(g.relu(g.relu(x)))
    order = [v.id for v in g.topo_sort()]
    assert order == [0, 1, 2, 3]
    assert h.id == 3


def test_topo_sort_diamond() -> None:
    g = Graph(name="diamond")
    x = g.input("x", [[1.0, -2.0]])
    left = g.relu(x)
    right = g.apply(Scale(factor=3.0), x)
    joined = g.add(left, right)
    _ = g.relu(joined)
    assert_topological(g)
    order = g.topo_sort()
    assert order[0] is x


def test_topo_sort_when_parents_are_created_late() -> None:
    g = Graph(name="late")
    out = g.add_variable(Variable(op=Add(), name="out"))
    r = g.add_variable(Variable(op=ReLU(), name="r"))
    x = g.input("x", [[-1.0, 1.0]])
    g.connect(x, r)
    g.connect(r, out)
    g.connect(x, out)
    assert_topological(g)
    g.forward()
    assert out.data.tolist() == [[-1.0, 2.0]]


def test_forward_is_deterministic() -> None:
    rng = np.random.default_rng(0)
    g = Graph(name="det")
    x = g.input("x", rng.normal(size=(5, 7)))
    w = g.param("w", rng.normal(size=(7, 3)))
    y = g.relu(g.matmul(x, w))
    g.forward()
    first = y.data.array.copy()
    g.forward()
    np.testing.assert_array_equal(first, y.data.array)


def test_forward_picks_up_new_leaf_data() -> None:
    g = Graph(name="feed")
    x = g.input("x")
    y = g.relu(x)
    x.data = Tensor([[-1.0, 3.0]])
    g.forward()
    assert y.data.tolist() == [[0.0, 3.0]]
    x.data = Tensor([[4.0, -4.0]])
    g.forward()
    assert y.data.tolist() == [[4.0, 0.0]]


def test_forward_reports_arity_mismatch() -> None:
    g = Graph(name="arity")
    a = g.input("a", [[1.0]])
    g.add_variable(Variable(op=MatMul(), inputs=[a.id]))
    with pytest.raises(InvalidArgumentError, match="expects exactly 2 inputs"):
        g.forward()


def test_forward_reports_missing_leaf_data() -> None:
    g = Graph(name="missing")
    x = g.input("x")
    g.relu(x)
    with pytest.raises(MissingDataError):
        g.forward()


def test_unbound_op_cannot_run() -> None:
    a = Variable(data=Tensor([[1.0]]))
    with pytest.raises(StructuralError):
        ReLU().forward([a])


# =============================================================================
# Backprop
# =============================================================================


def test_diamond_accumulates_both_branches() -> None:
    g = Graph(name="diamond")
    x = g.input("x", [[1.0, 2.0], [3.0, 4.0]])
    y1 = g.apply(Scale(factor=2.0), x, name="y1")
    y2 = g.apply(Scale(factor=3.0), x, name="y2")
    out = g.add(y1, y2, name="out")
    g.add_output(out)
    g.forward()

    (dx,) = g.backprop([x])
    np.testing.assert_array_equal(dx.array, np.full((2, 2), 5.0))


def test_each_consumer_backward_runs_once() -> None:
    g = Graph(name="memo")
    x = g.input("x", [[1.0, -1.0]])
    scales = [Scale(factor=float(k)) for k in (1, 2, 3)]
    s1, s2, s3 = (g.apply(op, x, name=f"s{k}") for k, op in enumerate(scales, start=1))
    out = g.add(g.add(s1, s2), s3, name="out")
    g.add_output(out)
    g.forward()

    dx, ds1, dout = g.backprop([x, s1, out])
    for op in scales:
        assert op.calls == ["x"]
    np.testing.assert_array_equal(dx.array, [[6.0, 6.0]])
    np.testing.assert_array_equal(ds1.array, [[1.0, 1.0]])
    np.testing.assert_array_equal(dout.array, [[1.0, 1.0]])


def test_gradient_shapes_match_data_shapes(rng) -> None:
    g = Graph(name="shapes")
    x = g.input("x", rng.normal(size=(4, 3)))
    w1 = g.param("w1", rng.normal(size=(4, 5)))
    w2 = g.param("w2", rng.normal(size=(6, 2)))
    h = g.relu(g.matmul(g.pad(x), w1))
    y = g.matmul(g.pad(h), w2)
    g.add_output(y)
    g.forward()

    targets = [v for v in g.variables if v.id not in g.outputs]
    grads = g.backprop(targets)
    for v, grad in zip(targets, grads):
        assert grad.shape == v.data.shape


def test_variable_used_twice_by_one_consumer() -> None:
    g = Graph(name="twice")
    x = g.input("x", [[1.0, 2.0], [3.0, 4.0]])
    s = g.add(x, x)
    sq = g.matmul(x, x)
    g.add_output(s)
    g.add_output(sq)
    g.forward()

    (dx,) = g.backprop([x])
    ones = np.ones((2, 2))
    xv = x.data.array
    expected = 2 * ones + ones @ xv.T + xv.T @ ones
    np.testing.assert_allclose(dx.array, expected)


def test_dangling_target_is_structural_error() -> None:
    g = Graph(name="dangling")
    x = g.input("x", [[1.0]])
    lonely = g.input("lonely", [[2.0]])
    y = g.relu(x)
    g.add_output(y)
    g.forward()
    with pytest.raises(StructuralError, match="no consumers"):
        g.backprop([lonely])


def test_unregistered_sibling_consumer_is_structural_error() -> None:
    g = Graph(name="sink")
    x = g.input("x", [[1.0]])
    y = g.relu(x)
    _ = g.relu(x)
    g.add_output(y)
    g.forward()
    with pytest.raises(StructuralError):
        g.backprop([x])


def test_backprop_before_forward_is_missing_data() -> None:
    g = Graph(name="early")
    x = g.input("x", [[1.0]])
    g.add_output(g.relu(x))
    with pytest.raises(MissingDataError):
        g.backprop([x])


def test_wrong_gradient_shape_is_structural_error() -> None:
    g = Graph(name="bad")
    x = g.input("x", [[1.0, 2.0]])
    y = g.apply(WrongShape(), x)
    g.add_output(y)
    g.forward()
    with pytest.raises(StructuralError, match="shape"):
        g.backprop([x])


def test_output_target_gets_ones() -> None:
    g = Graph(name="seed")
    x = g.input("x", [[1.0, 2.0, 3.0]])
    y = g.relu(x)
    g.add_output(y)
    g.forward()
    (dy,) = g.backprop([y])
    np.testing.assert_array_equal(dy.array, np.ones((1, 3)))


def test_summary_lists_variables() -> None:
    g = Graph(name="sum")
    x = g.input("x", [[1.0]])
    g.relu(x, name="act")
    text = g.summary()
    assert "Graph(name='sum', variables=2, outputs=0)" in text
    assert "- act: ReLU(x)" in text


def test_backprop_through_deep_chain() -> None:
    g = Graph(name="deep")
    x = g.param("x", [[1.0, -2.0]])
    h = x
    for _ in range(1500):
        h = g.linear(h)
    g.add_output(h)
    g.forward()

    (dx,) = g.backprop([x])
    np.testing.assert_array_equal(dx.array, [[1.0, 1.0]])


def test_backprop_rejects_cycles() -> None:
    g = Graph(name="cycle")
    a = g.input("a", [[1.0]])
    s1 = g.add_variable(Variable(op=Add(), name="s1"))
    s2 = g.add_variable(Variable(op=Add(), name="s2"))
    g.connect(a, s1)
    g.connect(s2, s1)
    g.connect(s1, s2)
    g.connect(a, s2)
    out = g.relu(s2, name="out")
    for v in (s1, s2, out):
        v.data = Tensor([[1.0]])
    g.add_output(out)

    with pytest.raises(StructuralError, match="cycle"):
        g.backprop([a])
