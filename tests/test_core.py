import numpy as np
import pytest

from scramble_core import (
    Image, Xoshiro256PlusPlus, check_key, generate_key_schedule,
    apply_permutation, invert_permutation, byte_lanes,
    chain_encrypt, chain_decrypt, encrypt_image, decrypt_image,
    encrypt_array, decrypt_array,
)


def _random_image(width, height, channels, seed=0):
    rng = np.random.default_rng(seed)
    data = rng.integers(0, 256, size=width * height * channels, dtype=np.uint8)
    return Image(width, height, channels, data.tobytes())


def _copy(image):
    return Image(image.width, image.height, image.channel_count, image.pixels,
                 mode=image.mode, format=image.format, palette=image.palette)


def _reference_encrypt(pixels, channels, key):
    """Flat-buffer rendition of permute-then-chain, indexed byte by byte."""
    dim = len(pixels) // channels
    init, keystream, perm = generate_key_schedule(key, dim)
    permuted = [pixels[channels * int(p) + c] for p in perm for c in range(channels)]
    out = []
    for c in range(channels):
        out.append(((init >> (8 * c)) & 0xFF) ^ permuted[c] ^ ((int(keystream[0]) >> (8 * c)) & 0xFF))
    for i in range(1, dim):
        for c in range(channels):
            out.append(out[channels * (i - 1) + c]
                       ^ permuted[channels * i + c]
                       ^ ((int(keystream[i]) >> (8 * c)) & 0xFF))
    return bytes(out)


# ==================== PSEUDORANDOM STREAM ====================

def test_xoshiro_known_outputs():
    seed = b''.join(n.to_bytes(8, 'little') for n in (1, 2, 3, 4))
    rng = Xoshiro256PlusPlus(seed)
    assert rng.next_u64() == 41943041
    assert rng.next_u64() == 58720359


def test_key_expands_with_splitmix64():
    rng = Xoshiro256PlusPlus.from_key(42)
    assert (rng.s0, rng.s1, rng.s2, rng.s3) == (
        13679457532755275413, 2949826092126892291,
        5139283748462763858, 6349198060258255764,
    )
    assert Xoshiro256PlusPlus.from_key(0).next_u64() == 5987356902031041503


def test_below_known_draws():
    rng = Xoshiro256PlusPlus.from_key(7)
    assert [rng.below(10) for _ in range(5)] == [0, 7, 4, 7, 3]


def test_next_u32_is_upper_half():
    seed = b''.join(n.to_bytes(8, 'little') for n in (1, 2, 3, 4))
    a, b = Xoshiro256PlusPlus(seed), Xoshiro256PlusPlus(seed)
    for _ in range(10):
        assert a.next_u32() == b.next_u64() >> 32


def test_same_key_same_stream():
    a, b = Xoshiro256PlusPlus.from_key(42), Xoshiro256PlusPlus.from_key(42)
    assert [a.next_u64() for _ in range(16)] == [b.next_u64() for _ in range(16)]


def test_different_keys_different_streams():
    a, b = Xoshiro256PlusPlus.from_key(1), Xoshiro256PlusPlus.from_key(2)
    assert [a.next_u32() for _ in range(8)] != [b.next_u32() for _ in range(8)]


def test_zero_key_gives_working_stream():
    rng = Xoshiro256PlusPlus.from_key(0)
    assert any(rng.next_u64() for _ in range(4))


def test_all_zero_seed_is_replaced():
    rng = Xoshiro256PlusPlus(bytes(32))
    zero_key = Xoshiro256PlusPlus.from_key(0)
    assert (rng.s0, rng.s1, rng.s2, rng.s3) == (zero_key.s0, zero_key.s1, zero_key.s2, zero_key.s3)


def test_seed_length_checked():
    with pytest.raises(ValueError):
        Xoshiro256PlusPlus(b'short')


@pytest.mark.parametrize('n', [1, 2, 3, 7, 100, 2**31 + 5])
def test_below_stays_in_range(n):
    rng = Xoshiro256PlusPlus.from_key(7)
    assert all(0 <= rng.below(n) < n for _ in range(200))


def test_below_covers_small_range():
    rng = Xoshiro256PlusPlus.from_key(3)
    assert {rng.below(4) for _ in range(400)} == {0, 1, 2, 3}


@pytest.mark.parametrize('key', [0, 1, 2**64 - 1, np.uint64(5)])
def test_check_key_accepts_u64(key):
    assert check_key(key) == int(key)


@pytest.mark.parametrize('key', [-1, 2**64])
def test_check_key_rejects_out_of_range(key):
    with pytest.raises(ValueError):
        check_key(key)


@pytest.mark.parametrize('key', [1.5, '42', True])
def test_check_key_rejects_non_integers(key):
    with pytest.raises(TypeError):
        check_key(key)


# ==================== KEY SCHEDULE ====================

def test_schedule_is_deterministic():
    a = generate_key_schedule(1234, 50)
    b = generate_key_schedule(1234, 50)
    assert a.init == b.init
    np.testing.assert_array_equal(a.keystream, b.keystream)
    np.testing.assert_array_equal(a.permutation, b.permutation)


def test_schedule_known_values():
    schedule = generate_key_schedule(42, 8)
    assert schedule.init == 3497413967
    assert schedule.keystream.tolist() == [
        1369325940, 4225793275, 3011354464, 3408075832,
        2525863680, 538384639, 2598981127, 892138458,
    ]
    assert schedule.permutation.tolist() == [1, 3, 5, 6, 2, 0, 4, 7]


def test_schedule_shapes_and_types():
    schedule = generate_key_schedule(99, 37)
    assert 0 <= schedule.init < 2**32
    assert schedule.keystream.dtype == np.uint32
    assert schedule.keystream.shape == (37,)
    assert schedule.permutation.shape == (37,)


def test_schedule_permutation_is_bijection():
    schedule = generate_key_schedule(5, 1000)
    np.testing.assert_array_equal(np.sort(schedule.permutation), np.arange(1000))


def test_schedule_draw_order():
    # init comes first and keystream words are drawn before the shuffle
    small = generate_key_schedule(77, 10)
    large = generate_key_schedule(77, 25)
    assert small.init == large.init
    np.testing.assert_array_equal(small.keystream, large.keystream[:10])

    rng = Xoshiro256PlusPlus.from_key(77)
    assert rng.next_u32() == small.init
    assert [rng.next_u32() for _ in range(10)] == small.keystream.tolist()


def test_schedule_empty_image_still_draws_init():
    schedule = generate_key_schedule(77, 0)
    assert schedule.init == generate_key_schedule(77, 3).init
    assert schedule.keystream.size == 0
    assert schedule.permutation.size == 0


def test_schedule_rejects_negative_dim():
    with pytest.raises(ValueError):
        generate_key_schedule(1, -1)


# ==================== PERMUTATION ENGINE ====================

def test_apply_permutation_moves_whole_pixels():
    pixels = np.array([[1, 2, 3], [4, 5, 6], [7, 8, 9]], dtype=np.uint8)
    perm = np.array([2, 0, 1])
    out = apply_permutation(pixels, perm)
    np.testing.assert_array_equal(out, [[7, 8, 9], [1, 2, 3], [4, 5, 6]])


def test_invert_permutation_composes_to_identity():
    perm = generate_key_schedule(11, 500).permutation
    inv = invert_permutation(perm)
    np.testing.assert_array_equal(inv[perm], np.arange(500))
    np.testing.assert_array_equal(perm[inv], np.arange(500))


def test_inverse_permutation_undoes_apply():
    pixels = _random_image(9, 7, 3).pixel_view()
    perm = generate_key_schedule(8, 63).permutation
    shuffled = apply_permutation(pixels, perm)
    np.testing.assert_array_equal(apply_permutation(shuffled, invert_permutation(perm)), pixels)


def test_apply_permutation_length_mismatch():
    with pytest.raises(ValueError):
        apply_permutation(np.zeros((4, 1), dtype=np.uint8), np.arange(3))


# ==================== CHAIN CIPHER ====================

def test_byte_lanes_little_endian():
    assert byte_lanes(0x04030201, 4).tolist() == [1, 2, 3, 4]
    assert byte_lanes(0x04030201, 2).tolist() == [1, 2]
    words = np.array([0x000000FF, 0xAABBCCDD], dtype=np.uint32)
    assert byte_lanes(words, 3).tolist() == [[0xFF, 0, 0], [0xDD, 0xCC, 0xBB]]


def test_byte_lanes_limited_to_four_channels():
    with pytest.raises(AssertionError):
        byte_lanes(1, 5)


def test_chain_encrypt_formula():
    plain = np.array([[10, 20], [30, 40], [50, 60]], dtype=np.uint8)
    init = 0x0000_0201
    keystream = np.array([0x0403, 0x0605, 0x0807], dtype=np.uint32)
    c0 = [1 ^ 10 ^ 3, 2 ^ 20 ^ 4]
    c1 = [c0[0] ^ 30 ^ 5, c0[1] ^ 40 ^ 6]
    c2 = [c1[0] ^ 50 ^ 7, c1[1] ^ 60 ^ 8]
    assert chain_encrypt(plain, init, keystream).tolist() == [c0, c1, c2]


def test_chain_decrypt_inverts_encrypt():
    plain = _random_image(40, 3, 4, seed=1).pixel_view()
    schedule = generate_key_schedule(3, 120)
    cipher = chain_encrypt(plain, schedule.init, schedule.keystream)
    np.testing.assert_array_equal(chain_decrypt(cipher, schedule.init, schedule.keystream), plain)


def test_chain_output_depends_on_previous_pixel():
    plain = np.zeros((4, 1), dtype=np.uint8)
    keystream = np.zeros(4, dtype=np.uint32)
    changed = plain.copy()
    changed[1, 0] = 1
    a = chain_encrypt(plain, 0, keystream)
    b = chain_encrypt(changed, 0, keystream)
    assert a[0, 0] == b[0, 0]
    assert (a[1:] != b[1:]).all()


def test_chain_ignores_unused_keystream_lanes():
    plain = np.array([[5], [6], [7]], dtype=np.uint8)
    low = np.array([0x11, 0x22, 0x33], dtype=np.uint32)
    high = low | np.uint32(0xFFFFFF00)
    np.testing.assert_array_equal(chain_encrypt(plain, 0x99, low),
                                  chain_encrypt(plain, 0xABCDEF99, high))


def test_chain_single_pixel_uses_init_only():
    plain = np.array([[1, 2, 3, 4]], dtype=np.uint8)
    keystream = np.array([0x0D0C0B0A], dtype=np.uint32)
    cipher = chain_encrypt(plain, 0x40302010, keystream)
    assert cipher.tolist() == [[1 ^ 0x10 ^ 0x0A, 2 ^ 0x20 ^ 0x0B, 3 ^ 0x30 ^ 0x0C, 4 ^ 0x40 ^ 0x0D]]
    np.testing.assert_array_equal(chain_decrypt(cipher, 0x40302010, keystream), plain)


def test_chain_empty_buffer():
    empty = np.zeros((0, 3), dtype=np.uint8)
    keystream = np.zeros(0, dtype=np.uint32)
    assert chain_encrypt(empty, 123, keystream).shape == (0, 3)
    assert chain_decrypt(empty, 123, keystream).shape == (0, 3)


def test_chain_keystream_length_checked():
    with pytest.raises(ValueError):
        chain_encrypt(np.zeros((3, 1), dtype=np.uint8), 0, np.zeros(2, dtype=np.uint32))


# ==================== ENCRYPTION PIPELINE ====================

@pytest.mark.parametrize('channels', [1, 2, 3, 4])
@pytest.mark.parametrize('size', [(1, 1), (2, 1), (7, 5), (16, 16)])
def test_round_trip(channels, size):
    original = _random_image(*size, channels, seed=channels)
    image = _copy(original)
    encrypt_image(image, 0xDEADBEEF)
    decrypt_image(image, 0xDEADBEEF)
    assert image.pixels == original.pixels


@pytest.mark.parametrize('key', [0, 1, 42, 2**63, 2**64 - 1])
def test_round_trip_any_key(key):
    original = _random_image(12, 9, 3)
    image = _copy(original)
    encrypt_image(image, key)
    decrypt_image(image, key)
    assert image.pixels == original.pixels


@pytest.mark.parametrize('channels', [1, 3, 4])
def test_encrypt_matches_flat_reference(channels):
    image = _random_image(6, 5, channels, seed=9)
    expected = _reference_encrypt(image.pixels, channels, 2024)
    encrypt_image(image, 2024)
    assert image.pixels == expected


def test_encryption_is_deterministic():
    a, b = _random_image(10, 10, 3), _random_image(10, 10, 3)
    encrypt_image(a, 555)
    encrypt_image(b, 555)
    assert a.pixels == b.pixels


def test_key_sensitivity():
    a, b = _random_image(10, 10, 3), _random_image(10, 10, 3)
    encrypt_image(a, 1)
    encrypt_image(b, 2)
    assert a.pixels != b.pixels


def test_wrong_key_does_not_recover():
    original = _random_image(10, 10, 1)
    image = _copy(original)
    encrypt_image(image, 1)
    decrypt_image(image, 2)
    assert image.pixels != original.pixels


def test_concrete_two_pixel_grayscale():
    image = Image(2, 1, 1, bytes([10, 20]))
    encrypt_image(image, 42)
    cipher = image.pixels
    assert cipher == bytes([49, 222])

    again = Image(2, 1, 1, bytes([10, 20]))
    encrypt_image(again, 42)
    assert again.pixels == cipher

    decrypt_image(image, 42)
    assert image.pixels == bytes([10, 20])


@pytest.mark.parametrize('width,height', [(0, 0), (0, 5), (4, 0)])
def test_empty_image_is_noop(width, height):
    image = Image(width, height, 3, b'')
    encrypt_image(image, 9)
    assert image.pixels == b''
    decrypt_image(image, 9)
    assert image.pixels == b''


def test_metadata_untouched():
    image = Image(2, 2, 1, bytes([1, 2, 3, 4]), mode='P', format='GIF', palette=[0, 0, 0, 255, 255, 255])
    encrypt_image(image, 17)
    assert (image.width, image.height, image.channel_count) == (2, 2, 1)
    assert (image.mode, image.format, image.palette) == ('P', 'GIF', [0, 0, 0, 255, 255, 255])
    assert len(image.pixels) == 4


def test_uniform_image_becomes_varied():
    image = Image(32, 32, 1, bytes(32 * 32))
    encrypt_image(image, 8)
    assert len(set(image.pixels)) > 200


@pytest.mark.parametrize('shape', [(5, 4), (5, 4, 3), (3, 3, 1)])
def test_array_helpers_round_trip(shape):
    arr = np.random.default_rng(4).integers(0, 256, size=shape, dtype=np.uint8)
    enc = encrypt_array(arr, 31337)
    assert enc.shape == arr.shape
    assert not np.array_equal(enc, arr)
    np.testing.assert_array_equal(decrypt_array(enc, 31337), arr)


# ==================== IMAGE BUFFER ====================

def test_image_rejects_wrong_buffer_length():
    with pytest.raises(ValueError):
        Image(2, 2, 3, bytes(11))


@pytest.mark.parametrize('channels', [0, 5])
def test_image_rejects_bad_channel_count(channels):
    with pytest.raises(ValueError):
        Image(1, 1, channels, bytes(max(channels, 0)))


def test_image_rejects_negative_size():
    with pytest.raises(ValueError):
        Image(-1, 1, 1, b'')


def test_pixel_view_addresses_pixels_then_channels():
    image = Image(2, 1, 3, bytes([1, 2, 3, 4, 5, 6]))
    view = image.pixel_view()
    assert view.shape == (2, 3)
    assert view[1].tolist() == [4, 5, 6]


def test_replace_pixels_checks_length():
    image = Image(2, 1, 1, bytes([1, 2]))
    with pytest.raises(ValueError):
        image.replace_pixels(np.zeros((3, 1), dtype=np.uint8))


def test_from_array_and_back():
    arr = np.arange(24, dtype=np.uint8).reshape(2, 4, 3)
    image = Image.from_array(arr, mode='RGB')
    assert (image.width, image.height, image.channel_count) == (4, 2, 3)
    np.testing.assert_array_equal(image.to_array(), arr)


def test_from_array_rejects_non_uint8():
    with pytest.raises(ValueError):
        Image.from_array(np.zeros((2, 2), dtype=np.float32))
