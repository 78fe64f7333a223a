import pytest

from heap_builder import HeapImage, layout_for
from heapscan.lib.core.errors import DecodeFailure, LookupMiss
from heapscan.lib.core.memory import ByteOrder
from heapscan.lib.heap.constants import InstanceType, OddballKind
from heapscan.lib.heap.types import make_smi, smi_value


def test_small_integers_round_trip_both_widths():
    for word_size in (4, 8):
        for value in (0, 1, -1, 12345, -(1 << 30)):
            word = make_smi(value, word_size)
            assert word & 1 == 0
            assert smi_value(word, word_size) == value


def test_map_of_requires_meta_map(heap):
    """A map whose own map is not the meta map is rejected."""
    obj = heap.js_object([("a", heap.smi(1))])
    fake_meta = heap.make_map(InstanceType.JS_OBJECT, meta=heap.meta_map)
    fake_map = heap.make_map(InstanceType.JS_OBJECT, meta=fake_meta)
    fake = heap.alloc(3)
    heap.write_words(fake, [fake_map, heap.empty_fixed_array, heap.empty_fixed_array])
    layout = layout_for(heap)

    assert layout.map_of(obj).instance_type == InstanceType.JS_OBJECT
    assert layout.map_of(fake) is None
    with pytest.raises(DecodeFailure):
        layout.require_map(fake)


def test_as_heap_object_rejects_unmapped_words(heap):
    layout = layout_for(heap)
    assert layout.as_heap_object(heap.smi(4)) is None
    assert layout.as_heap_object(0x636261) is None
    assert layout.as_heap_object(heap.undefined) == heap.undefined


def test_type_names(heap):
    named = heap.js_object(constructor="Point")
    anonymous = heap.js_object()
    array = heap.js_array([])
    text = heap.seq_string("hi")
    layout = layout_for(heap)

    assert layout.type_name(named) == "Point"
    assert layout.type_name(anonymous) == "Object"
    assert layout.type_name(array) == "(Array)"
    assert layout.type_name(text) == "(String)"
    assert layout.type_name(heap.empty_fixed_array) == "(FixedArray)"


def test_flat_strings(heap):
    one_byte = heap.seq_string("hello")
    two_byte = heap.seq_string("héllo世", two_byte=True)
    empty = heap.seq_string("")
    layout = layout_for(heap)

    assert layout.string_to_text(one_byte) == "hello"
    assert layout.string_to_text(one_byte, limit=3) == "hel"
    assert layout.string_to_text(two_byte) == "héllo世"
    assert layout.string_to_text(empty) == ""
    assert layout.string_length(two_byte) == 6


def test_two_byte_strings_follow_image_byte_order():
    heap = HeapImage(byte_order=ByteOrder.BIG)
    text = heap.seq_string("ab世", two_byte=True)
    assert layout_for(heap).string_to_text(text) == "ab世"


def test_composite_strings(heap):
    hello = heap.seq_string("hello ")
    world = heap.seq_string("world")
    cons = heap.cons_string(hello, world)
    nested = heap.cons_string(cons, heap.seq_string("!"))
    sliced = heap.sliced_string(heap.seq_string("abcdefgh"), 2, 3)
    thin = heap.thin_string(world)
    layout = layout_for(heap)

    assert layout.string_to_text(cons) == "hello world"
    assert layout.string_to_text(nested) == "hello world!"
    assert layout.string_to_text(nested, limit=4) == "hell"
    assert layout.string_to_text(sliced) == "cde"
    assert layout.string_to_text(thin) == "world"

    assert layout.string_components(cons) == [("<First>", hello), ("<Second>", world)]
    assert layout.string_components(thin) == [("<Actual>", world)]
    assert layout.string_components(hello) == []


def test_cons_of_empty_strings_terminates(heap):
    empty = heap.seq_string("")
    cons = heap.cons_string(empty, empty)
    for _ in range(2):
        cons = heap.cons_string(cons, empty)
    assert layout_for(heap).string_to_text(cons) == ""


def test_cyclic_cons_string_is_a_decode_failure(heap):
    first = heap.seq_string("ab")
    cons = heap.cons_string(first, first)
    # Point the second half back at the cons itself
    heap.write_word(cons, 4, cons)
    with pytest.raises(DecodeFailure):
        layout_for(heap).string_to_text(cons)


def test_self_referencing_thin_slice_parent_is_a_decode_failure(heap):
    thin = heap.thin_string(heap.seq_string("ab"))
    heap.write_word(thin, 3, thin)
    sliced = heap.sliced_string(thin, 0, 2)
    with pytest.raises(DecodeFailure):
        layout_for(heap).string_to_text(sliced)


def test_mutually_referencing_thin_strings_are_a_decode_failure(heap):
    first = heap.thin_string(heap.seq_string("ab"))
    second = heap.thin_string(first)
    heap.write_word(first, 3, second)
    sliced = heap.sliced_string(second, 1, 1)
    with pytest.raises(DecodeFailure):
        layout_for(heap).string_to_text(sliced)


def test_external_string_cannot_be_decoded(heap):
    external = heap.external_string(10)
    with pytest.raises(DecodeFailure):
        layout_for(heap).string_to_text(external)


def test_in_object_and_out_of_object_properties(heap):
    inside = heap.js_object([("x", heap.smi(1)), ("y", heap.smi(2))])
    outside = heap.js_object([("x", heap.smi(3)), ("y", heap.smi(4))], in_object=False)
    layout = layout_for(heap)

    assert layout.keys(inside) == ["x", "y"]
    assert layout.get_property(inside, "y") == heap.smi(2)
    assert layout.get_property(outside, "x") == heap.smi(3)
    assert layout.get_property(outside, "y") == heap.smi(4)
    with pytest.raises(LookupMiss):
        layout.get_property(inside, "z")


def test_descriptor_held_values(heap):
    marker = heap.seq_string("constant")
    obj = heap.js_object([("a", heap.smi(1)), ("k", marker)], descriptor_values={"k": marker})
    layout = layout_for(heap)
    assert layout.get_property(obj, "a") == heap.smi(1)
    assert layout.get_property(obj, "k") == marker


def test_dictionary_mode_properties(heap):
    obj = heap.dictionary_object([("alpha", heap.smi(7)), ("beta", heap.true)])
    layout = layout_for(heap)

    assert layout.keys(obj) == ["alpha", "beta"]
    assert layout.get_property(obj, "beta") == heap.true


def test_arrays_and_elements(heap):
    array = heap.js_array([heap.smi(5), heap.null])
    layout = layout_for(heap)

    assert layout.array_length(array) == 2
    assert layout.element_values(array) == [heap.smi(5), heap.null]


def test_oddballs_and_numbers(heap):
    number = heap.heap_number(1.25)
    layout = layout_for(heap)

    assert layout.oddball_kind(heap.undefined) == OddballKind.UNDEFINED
    assert layout.is_hole(heap.hole)
    assert not layout.is_oddball(number)
    assert layout.heap_number_value(number) == 1.25


def test_context_locals(heap):
    value = heap.js_object()
    ctx = heap.context([("counter", heap.smi(3)), ("target", value)])
    layout = layout_for(heap)

    locals_ = [(layout.string_to_text(name), word) for name, word in layout.context_locals(ctx)]
    assert locals_ == [("counter", heap.smi(3)), ("target", value)]
    assert layout.is_context_type(layout.type_tag(ctx))


def test_object_sizes(heap):
    obj = heap.js_object([("a", heap.smi(1)), ("b", heap.smi(2))])
    text = heap.seq_string("abcdefghij")
    array = heap.fixed_array([heap.smi(0)] * 3)
    layout = layout_for(heap)

    assert layout.object_size(obj) == 5 * 8
    # Three header words plus ten characters padded to a word
    assert layout.object_size(text) == 3 * 8 + 16
    assert layout.object_size(array) == 5 * 8
