"""Tests for the FROST signing reference implementation"""

from hashlib import sha256
from itertools import combinations
from random import Random
from typing import List, Sequence, Tuple

import pytest

from secp256k1lab.secp256k1 import GE, G, Scalar

from frost_ref.util import (
    H1,
    H2,
    H3,
    H4,
    H5,
    DeserializationError,
    DuplicateIdentifierError,
    FaultyCoordinatorError,
    InterpolationError,
    InvalidContributionError,
    MissingBindingFactorError,
    NonceReuseError,
    SessionStateError,
    ThresholdOrCountError,
    ZeroIdentifierError,
)
from frost_ref.shamir import (
    NonZeroScalar,
    Polynomial,
    SecretShare,
    VSSCommitment,
    derive_group_pubkey,
    derive_interpolating_value,
    reconstruct,
    split,
    trusted_dealer_keygen,
)
from frost_ref.signing import (
    Commitment,
    Signature,
    aggregate,
    compute_binding_factors,
    compute_challenge,
    compute_group_commitment,
    encode_group_commitment_list,
    nonce_generate,
    sign,
    signer_round1,
    signer_round2,
    sort_commitments,
    verify,
    verify_message,
    verify_signature_share,
)
from frost_ref.frost import (
    Coordinator,
    CoordinatorMsg,
    SessionParams,
    SessionState,
    Signer,
    params_validate,
)

from example import simulate_frost_full


MSG = b"asia is underrated"


def deal(t: int, n: int, seed: int = 0):
    rng = Random(seed)
    secret = Scalar.from_bytes_wrapping(rng.randbytes(32))
    group_pk, secshares, com = trusted_dealer_keygen(secret, t, n, rng.randbytes)
    return secret, group_pk, secshares, com


def ids(*indices: int) -> List[NonZeroScalar]:
    return [NonZeroScalar(i) for i in indices]


def run_session(
    secshares: Sequence[SecretShare],
    group_pk: GE,
    msg: bytes,
    rng: Random,
    blind: Sequence[int] = (),
) -> Tuple[Signature, Scalar, List[Scalar]]:
    # Runs both rounds for the given signers without the role objects.
    states = []
    commitments = []
    for share in secshares:
        state1, commitment = signer_round1(share, share.index in blind, rng.randbytes)
        states.append(state1)
        commitments.append(commitment)
    commitments = sort_commitments(commitments)
    binding_factors = compute_binding_factors(group_pk, commitments, msg)
    R = compute_group_commitment(commitments, binding_factors)
    challenge = compute_challenge(R, group_pk, msg)
    identifiers = [commitment.identifier for commitment in commitments]
    sigshares = [
        sign(signer_round2(state1, binding_factors), challenge, identifiers)
        for state1 in states
    ]
    return Signature(R, aggregate(sigshares)), challenge, sigshares


#
# Hash suite
#


def test_hash_domain_separation():
    m = b"\x01" * 64
    digests = [H1(m), H2(m), H3(m), H4(m), H5(m)]
    assert all(len(d) == 32 for d in digests)
    assert len(set(digests)) == 5
    assert H2(m) == sha256(m).digest()
    assert H1(m) != H1(m + b"\x00")


#
# Identifiers and interpolation
#


def test_nonzero_scalar_rejects_zero():
    for _ in range(3):
        with pytest.raises(ZeroIdentifierError):
            NonZeroScalar(0)
        with pytest.raises(ZeroIdentifierError):
            NonZeroScalar(Scalar(0))
        # The group order is congruent to zero.
        with pytest.raises(ZeroIdentifierError):
            NonZeroScalar(GE.ORDER)
    assert int(NonZeroScalar(7)) == 7
    assert NonZeroScalar(7) == NonZeroScalar(Scalar(7))
    assert sorted(ids(3, 1, 2)) == ids(1, 2, 3)
    assert NonZeroScalar.from_bytes(NonZeroScalar(5).to_bytes()) == NonZeroScalar(5)
    with pytest.raises(ZeroIdentifierError):
        NonZeroScalar.from_bytes(bytes(32))


def test_interpolating_values_sum_to_one():
    identifiers = ids(1, 2, 3, 4, 5)
    lams = [derive_interpolating_value(identifiers, x_i) for x_i in identifiers]
    assert Scalar.sum(*lams) == Scalar(1)


def test_interpolating_value_errors():
    with pytest.raises(InterpolationError):
        derive_interpolating_value(ids(1, 2, 3), NonZeroScalar(4))
    with pytest.raises(InterpolationError):
        derive_interpolating_value(ids(1, 2, 2, 3), NonZeroScalar(2))
    with pytest.raises(InterpolationError):
        derive_interpolating_value(ids(1, 1, 3), NonZeroScalar(3))


#
# Secret sharing
#


def test_recover_secret():
    f = Polynomial([Scalar(23), Scalar(42)])
    shares = [SecretShare(i, f(Scalar(i))) for i in [1, 2, 3]]
    assert reconstruct([shares[0], shares[1]]) == f.coeffs[0]
    assert reconstruct([shares[0], shares[2]]) == f.coeffs[0]
    assert reconstruct([shares[1], shares[2]]) == f.coeffs[0]
    assert reconstruct(shares) == f.coeffs[0]


@pytest.mark.parametrize("t, n", [(2, 2), (2, 3), (3, 5), (4, 6)])
def test_split_reconstruct_every_subset(t, n):
    rng = Random(t * 100 + n)
    secret = Scalar.from_bytes_wrapping(rng.randbytes(32))
    shares = split(secret, t, n, rng.randbytes)
    assert len(shares) == n
    assert [share.index for share in shares] == list(range(1, n + 1))
    for size in range(t, n + 1):
        for subset in combinations(shares, size):
            assert reconstruct(subset) == secret


@pytest.mark.parametrize("t, n", [(1, 3), (0, 3), (4, 3), (-2, 3)])
def test_split_rejects_bad_threshold(t, n):
    with pytest.raises(ThresholdOrCountError):
        split(Scalar(42), t, n)


def test_reconstruct_below_threshold_hides_secret():
    secret = Scalar(42)
    t, n = 3, 5
    outputs = set()
    for seed in range(50):
        shares = split(secret, t, n, Random(seed).randbytes)
        for subset in combinations(shares, t - 1):
            value = reconstruct(subset)
            assert value != secret
            outputs.add(int(value))
    # This only shows that t-1 shares do not interpolate to the secret and
    # that their interpolation changes with every sharing. Independence from
    # the secret is checked below.
    assert len(outputs) > 50 * 9


def test_share_below_threshold_independent_of_secret():
    # With t = 2, the share y = s + 2a of participant 2 is consistent with
    # every secret s2, namely through the line with slope (y - s2) / 2.
    for seed in range(10):
        y = split(Scalar(42), 2, 3, Random(seed).randbytes)[1].value
        for s2 in [Scalar(0), Scalar(7), Scalar(GE.ORDER - 1)]:
            f2 = Polynomial([s2, (y - s2) / Scalar(2)])
            assert f2(Scalar(2)) == y

    # Over many sharings, a share is spread the same way for different
    # secrets.
    trials = 1000
    for secret in [Scalar(0), Scalar(42), Scalar(GE.ORDER - 1)]:
        values = [
            int(split(secret, 2, 2, Random(seed).randbytes)[0].value)
            for seed in range(trials)
        ]
        assert len(set(values)) == trials
        low = sum(1 for v in values if v < GE.ORDER // 2)
        assert 0.42 * trials < low < 0.58 * trials
        odd = sum(v & 1 for v in values)
        assert 0.42 * trials < odd < 0.58 * trials


def test_reconstruct_rejects_duplicate_indices():
    shares = split(Scalar(42), 2, 3, Random(1).randbytes)
    with pytest.raises(InterpolationError):
        reconstruct([shares[0], shares[0]])


def test_trusted_dealer_keygen():
    t, n = 3, 5
    secret, group_pk, secshares, com = deal(t, n)
    assert group_pk == secret * G
    assert com.t() == t
    for share in secshares:
        assert com.verify_secshare(share)
        assert com.pubshare(share.index) == share.value * G
    assert not com.verify_secshare(SecretShare(1, secshares[0].value + Scalar(1)))
    assert not com.verify_secshare(SecretShare(2, secshares[0].value))

    pubshares = [com.pubshare(i) for i in range(1, n + 1)]
    for subset in combinations(range(1, n + 1), t):
        assert (
            derive_group_pubkey(ids(*subset), [pubshares[i - 1] for i in subset])
            == group_pk
        )

    with pytest.raises(ValueError):
        trusted_dealer_keygen(Scalar(0), t, n)
    with pytest.raises(ThresholdOrCountError):
        trusted_dealer_keygen(secret, n + 1, n)


def test_vss_commitment_encoding():
    _, _, _, com = deal(2, 3)
    b = com.to_bytes()
    assert len(b) == 2 * 33
    com2 = VSSCommitment.from_bytes_and_t(b, 2)
    assert com2.ges == com.ges
    with pytest.raises(DeserializationError):
        VSSCommitment.from_bytes_and_t(b, 3)


#
# Nonces and commitments
#


def test_nonce_generate():
    secret = Scalar(1234)
    assert nonce_generate(secret, Random(0).randbytes) == nonce_generate(
        secret, Random(0).randbytes
    )
    assert nonce_generate(secret, Random(0).randbytes) != nonce_generate(
        secret, Random(1).randbytes
    )
    # The same randomness gives different nonces for different secrets.
    assert nonce_generate(secret, Random(0).randbytes) != nonce_generate(
        Scalar(1235), Random(0).randbytes
    )


def test_signer_round1_commitment():
    _, _, secshares, _ = deal(2, 3)
    state1, commitment = signer_round1(secshares[1], False, Random(5).randbytes)
    assert commitment.identifier == NonZeroScalar(2)
    d = Scalar.from_bytes_checked(bytes(state1.secnonce[0:32]))
    e = Scalar.from_bytes_checked(bytes(state1.secnonce[32:64]))
    assert commitment.nonce_commitment() == (d * G, e * G)
    assert state1.commitment == commitment
    assert Commitment.from_bytes(commitment.to_bytes()) == commitment


def test_commitment_decoding_errors():
    _, _, secshares, _ = deal(2, 3)
    _, commitment = signer_round1(secshares[0], False, Random(5).randbytes)
    b = commitment.to_bytes()
    assert len(b) == 98
    with pytest.raises(DeserializationError):
        Commitment.from_bytes(b[:-1])
    with pytest.raises(DeserializationError):
        Commitment.from_bytes(b[:32] + b"\x05" + b[33:])
    # The hiding nonce commitment must not be the point at infinity.
    with pytest.raises(DeserializationError):
        Commitment.from_bytes(b[:32] + bytes(33) + b[65:])
    with pytest.raises(ZeroIdentifierError):
        Commitment.from_bytes(bytes(32) + b[32:])


#
# Binding factors
#


def make_commitments(indices, seed=0) -> List[Commitment]:
    rng = Random(seed)
    _, _, secshares, _ = deal(2, max(indices), seed)
    return [
        signer_round1(secshares[i - 1], False, rng.randbytes)[1] for i in indices
    ]


def test_binding_factors_deterministic():
    _, group_pk, _, _ = deal(2, 3)
    commitments = make_commitments([1, 2, 3])
    bfs = compute_binding_factors(group_pk, commitments, MSG)
    assert bfs == compute_binding_factors(group_pk, list(commitments), MSG)
    assert [bf.identifier for bf in bfs] == ids(1, 2, 3)
    assert len({int(bf.rho) for bf in bfs}) == 3

    # Every input is bound.
    assert bfs != compute_binding_factors(group_pk, commitments, MSG + b"!")
    assert bfs != compute_binding_factors(group_pk + G, commitments, MSG)
    assert bfs != compute_binding_factors(
        group_pk, make_commitments([1, 2, 3], seed=1), MSG
    )


def test_commitment_list_order():
    commitments = make_commitments([1, 2, 3])
    shuffled = [commitments[2], commitments[0], commitments[1]]
    with pytest.raises(ValueError):
        encode_group_commitment_list(shuffled)
    with pytest.raises(ValueError):
        encode_group_commitment_list([commitments[0], commitments[0]])
    assert sort_commitments(shuffled) == commitments
    assert encode_group_commitment_list(commitments) == b"".join(
        c.to_bytes() for c in commitments
    )
    with pytest.raises(DuplicateIdentifierError) as e:
        sort_commitments(commitments + [commitments[1]])
    assert e.value.participant == 2


def test_group_commitment():
    _, group_pk, _, _ = deal(2, 3)
    commitments = make_commitments([1, 3])
    bfs = compute_binding_factors(group_pk, commitments, MSG)
    R = compute_group_commitment(commitments, bfs)
    expected = GE()
    for (_, D, E), (_, rho) in zip(commitments, bfs):
        expected = expected + D + rho * E
    assert R == expected

    with pytest.raises(MissingBindingFactorError) as e:
        compute_group_commitment(commitments, bfs[:1])
    assert e.value.participant == 3


#
# Signing
#


def test_sign_verify_every_subset():
    t, n = 3, 5
    secret, group_pk, secshares, com = deal(t, n)
    rng = Random(7)
    Rs = set()
    for subset in combinations(secshares, t):
        signature, challenge, _ = run_session(subset, group_pk, MSG, rng)
        assert verify(signature, group_pk, challenge)
        assert verify_message(signature, group_pk, MSG)
        assert not verify_message(signature, group_pk, MSG + b"!")
        Rs.add(signature.R.to_bytes_compressed())
        # Every signing set agrees on the key the signature is made with.
        identifiers = [NonZeroScalar(share.index) for share in subset]
        key = Scalar.sum(
            *(
                derive_interpolating_value(identifiers, x_i) * share.value
                for x_i, share in zip(identifiers, subset)
            )
        )
        assert key == secret
    # Fresh nonces in every session.
    assert len(Rs) == 10


def test_sign_with_more_than_t_signers():
    t, n = 2, 4
    _, group_pk, secshares, _ = deal(t, n)
    signature, challenge, _ = run_session(secshares, group_pk, MSG, Random(3))
    assert verify(signature, group_pk, challenge)


def test_corrupted_share_rejected():
    t, n = 3, 5
    _, group_pk, secshares, _ = deal(t, n)
    signature, challenge, sigshares = run_session(
        secshares[:t], group_pk, MSG, Random(9)
    )
    sigshares[1] = sigshares[1] + Scalar(1)
    corrupted = Signature(signature.R, aggregate(sigshares))
    assert not verify(corrupted, group_pk, challenge)
    assert not verify(signature, group_pk, challenge + Scalar(1))
    assert not verify(Signature(signature.R + G, signature.s), group_pk, challenge)


def test_verify_signature_share():
    t, n = 2, 3
    _, group_pk, secshares, com = deal(t, n)
    rng = Random(11)
    signers = [secshares[0], secshares[2]]
    states, commitments = zip(
        *(signer_round1(share, False, rng.randbytes) for share in signers)
    )
    bfs = compute_binding_factors(group_pk, list(commitments), MSG)
    R = compute_group_commitment(commitments, bfs)
    challenge = compute_challenge(R, group_pk, MSG)
    identifiers = ids(1, 3)
    for state1, commitment in zip(states, commitments):
        z = sign(signer_round2(state1, bfs), challenge, identifiers)
        pubshare = com.pubshare(int(commitment.identifier))
        share = (commitment.identifier, z)
        assert verify_signature_share(
            share, commitment, pubshare, bfs, challenge, identifiers
        )
        assert not verify_signature_share(
            (commitment.identifier, z + Scalar(1)),
            commitment,
            pubshare,
            bfs,
            challenge,
            identifiers,
        )
    assert not verify_signature_share(
        (NonZeroScalar(1), Scalar(5)), commitments[1], G, bfs, challenge, identifiers
    )


def test_nonce_reuse():
    # Signing twice with the same nonces is a misuse which leaks the secret
    # share. The secret nonce is wiped after use so that it cannot happen by
    # accident. A caller who copies the nonce can still misuse it.
    t, n = 2, 2
    _, group_pk, secshares, _ = deal(t, n)
    rng = Random(13)
    state1s, commitments = zip(
        *(signer_round1(share, False, rng.randbytes) for share in secshares)
    )
    identifiers = ids(1, 2)
    copied_secnonce = bytearray(state1s[0].secnonce)

    zs = []
    for msg in [MSG, MSG + b"!"]:
        bfs = compute_binding_factors(group_pk, list(commitments), msg)
        R = compute_group_commitment(commitments, bfs)
        challenge = compute_challenge(R, group_pk, msg)
        state2 = signer_round2(state1s[0], bfs)
        if msg == MSG:
            zs.append(sign(state2, challenge, identifiers))
            assert state1s[0].secnonce == bytearray(64)
            with pytest.raises(NonceReuseError):
                sign(state2, challenge, identifiers)
        else:
            with pytest.raises(NonceReuseError):
                sign(state2, challenge, identifiers)
            state2 = state2._replace(secnonce=copied_secnonce)
            zs.append(sign(state2, challenge, identifiers))
    assert zs[0] != zs[1]


def test_signer_not_in_session():
    _, group_pk, secshares, _ = deal(2, 3)
    rng = Random(17)
    state1, commitment = signer_round1(secshares[0], False, rng.randbytes)
    other = signer_round1(secshares[1], False, rng.randbytes)[1]
    bfs = compute_binding_factors(group_pk, [other], MSG)
    with pytest.raises(MissingBindingFactorError):
        signer_round2(state1, bfs)
    bfs = compute_binding_factors(group_pk, [commitment, other], MSG)
    state2 = signer_round2(state1, bfs)
    with pytest.raises(InterpolationError):
        sign(state2, Scalar(1), ids(2, 3))
    # A failed attempt does not consume the nonce.
    sign(state2, Scalar(1), ids(1, 2))


def test_blind_signers():
    # Blind signers are a non-standard extension: they contribute no binding
    # nonce. Signatures still verify.
    t, n = 3, 5
    _, group_pk, secshares, _ = deal(t, n)
    state1, commitment = signer_round1(secshares[4], True, Random(19).randbytes)
    assert state1.is_blind
    assert commitment.E.infinity
    assert Scalar.from_bytes_checked(bytes(state1.secnonce[32:64])) == 0
    assert Commitment.from_bytes(commitment.to_bytes()) == commitment

    signers = [secshares[0], secshares[3], secshares[4]]
    signature, challenge, _ = run_session(
        signers, group_pk, MSG, Random(21), blind=[4, 5]
    )
    assert verify(signature, group_pk, challenge)
    assert verify_message(signature, group_pk, MSG)


def test_signature_encoding():
    _, group_pk, secshares, _ = deal(2, 2)
    signature, _, _ = run_session(secshares, group_pk, MSG, Random(23))
    b = signature.to_bytes()
    assert len(b) == 65
    assert Signature.from_bytes(b) == signature
    with pytest.raises(DeserializationError):
        Signature.from_bytes(b[:64])
    with pytest.raises(DeserializationError):
        Signature.from_bytes(b[:33] + b"\xff" * 32)


#
# Role objects
#


def test_params_validate():
    params_validate(SessionParams(2, 3))
    for t, n in [(1, 3), (4, 3), (0, 0)]:
        with pytest.raises(ThresholdOrCountError):
            params_validate(SessionParams(t, n))


def make_roles(t, n, seed=0, pubshares=True):
    _, group_pk, secshares, com = deal(t, n, seed)
    rng = Random(seed + 1)
    signers = [
        Signer(share, group_pk, random_bytes=rng.randbytes) for share in secshares
    ]
    coord = Coordinator(
        SessionParams(t, n),
        group_pk,
        [com.pubshare(i) for i in range(1, n + 1)] if pubshares else None,
    )
    return signers, coord


def test_roles_full_session():
    signers, coord = make_roles(3, 5)
    session = [signers[4], signers[0], signers[2]]
    assert all(s.state is SessionState.INITIALIZED for s in session)
    assert coord.state is SessionState.INITIALIZED

    coord.start(MSG)
    commitments = [s.commit() for s in session]
    assert all(s.state is SessionState.NONCE_COMMITTED for s in session)
    cmsg = coord.receive_commitments(commitments)
    assert coord.state is SessionState.BINDING_FACTORS_KNOWN
    assert cmsg.identifiers() == ids(1, 3, 5)

    sigshares = [s.sign(cmsg) for s in session]
    assert all(s.state is SessionState.SIGNATURE_SHARED for s in session)
    signature = coord.aggregate(sigshares)
    assert coord.state is SessionState.AGGREGATED
    assert coord.verify()
    assert coord.state is SessionState.VERIFIED
    assert verify_message(signature, coord.group_pk, MSG)

    # The session's outcome is final.
    assert not coord.verify(Signature(signature.R, signature.s + Scalar(1)))
    assert coord.state is SessionState.VERIFIED
    assert coord.verify()


def test_coordinator_verify_recomputes_challenge():
    signers, coord = make_roles(2, 3)
    coord.start(MSG)
    cmsg = coord.receive_commitments([s.commit() for s in signers[:2]])
    coord.aggregate([s.sign(cmsg) for s in signers[:2]])

    # Satisfies s*G == R + c*pk for the session's challenge c, but c is not
    # the challenge of this R.
    s = Scalar(5)
    R = s * G + (Scalar(-1) * cmsg.challenge) * coord.group_pk
    forged = Signature(R, s)
    assert verify(forged, coord.group_pk, cmsg.challenge)
    assert not coord.verify(forged)
    assert coord.state is SessionState.AGGREGATED
    assert coord.verify()
    assert coord.state is SessionState.VERIFIED


def test_coordinator_verify_accepts_earlier_session_signature():
    signers, coord = make_roles(2, 3)
    coord.start(MSG)
    cmsg = coord.receive_commitments([s.commit() for s in signers[:2]])
    earlier = coord.aggregate([s.sign(cmsg) for s in signers[:2]])

    coord.start(MSG)
    cmsg = coord.receive_commitments([s.commit() for s in signers[1:]])
    signature = coord.aggregate([s.sign(cmsg) for s in signers[1:]])
    assert earlier.R != signature.R
    assert coord.verify(earlier)
    assert coord.verify(signature)


def test_roles_session_order():
    signers, coord = make_roles(2, 3)
    with pytest.raises(SessionStateError):
        coord.aggregate([])
    with pytest.raises(SessionStateError):
        coord.verify()
    with pytest.raises(SessionStateError):
        coord.receive_commitments([s.commit() for s in signers[:2]])

    coord.start(MSG)
    commitments = [s.commit() for s in signers[:2]]
    cmsg = coord.receive_commitments(commitments)
    with pytest.raises(SessionStateError):
        coord.receive_commitments(commitments)

    # A signer cannot sign without committing first.
    with pytest.raises(SessionStateError):
        signers[2].sign(cmsg)

    signers[0].sign(cmsg)
    # Nor can it sign twice in one session.
    with pytest.raises(SessionStateError):
        signers[0].sign(cmsg)


def test_roles_abandoned_session():
    signers, coord = make_roles(2, 2)
    coord.start(MSG)
    old = [s.commit() for s in signers]
    cmsg_old = coord.receive_commitments(old)

    # Restart with fresh nonces, e.g. after a signer dropped out.
    coord.start(MSG)
    new = [s.commit() for s in signers]
    assert new != old
    cmsg = coord.receive_commitments(new)
    assert cmsg != cmsg_old
    signature = coord.aggregate([s.sign(cmsg) for s in signers])
    assert coord.verify(signature)


def test_coordinator_rejects_bad_commitments():
    signers, coord = make_roles(3, 4)
    coord.start(MSG)
    commitments = [s.commit() for s in signers]
    with pytest.raises(ValueError):
        coord.receive_commitments(commitments[:2])
    with pytest.raises(DuplicateIdentifierError):
        coord.receive_commitments(commitments[:3] + [commitments[0]])
    outsider = Commitment(NonZeroScalar(5), G, G)
    with pytest.raises(InvalidContributionError) as e:
        coord.receive_commitments(commitments[:3] + [outsider])
    assert e.value.participant == 5
    assert coord.state is SessionState.INITIALIZED
    coord.receive_commitments(commitments)


def test_coordinator_blames_faulty_signer():
    signers, coord = make_roles(3, 5)
    session = signers[:3]
    coord.start(MSG)
    cmsg = coord.receive_commitments([s.commit() for s in session])
    sigshares = [s.sign(cmsg) for s in session]
    identifier, z = sigshares[1]
    sigshares[1] = sigshares[1]._replace(z=z + Scalar(1))
    with pytest.raises(InvalidContributionError) as e:
        coord.aggregate(sigshares)
    assert e.value.participant == int(identifier)
    assert e.value.contrib == "sigshare"

    with pytest.raises(InvalidContributionError):
        coord.aggregate(sigshares[:2])


def test_coordinator_rejects_repeated_sigshare():
    signers, coord = make_roles(2, 3, pubshares=False)
    coord.start(MSG)
    cmsg = coord.receive_commitments([s.commit() for s in signers[:2]])
    sigshares = [s.sign(cmsg) for s in signers[:2]]
    bad = sigshares[0]._replace(z=sigshares[0].z + Scalar(1))
    for repeated in [sigshares + [sigshares[0]], [bad] + sigshares]:
        with pytest.raises(InvalidContributionError) as e:
            coord.aggregate(repeated)
        assert e.value.participant == 1
        assert e.value.contrib == "sigshare"
    assert coord.state is SessionState.BINDING_FACTORS_KNOWN
    coord.aggregate(sigshares)
    assert coord.verify()


def test_signer_checks_coordinator_msg():
    signers, coord = make_roles(2, 3)
    coord.start(MSG)
    commitments = [s.commit() for s in signers[:2]]
    cmsg = coord.receive_commitments(commitments)
    bf0, bf1 = cmsg.binding_factors
    other = signers[2].commit()
    bad_msgs = [
        cmsg._replace(challenge=cmsg.challenge + Scalar(1)),
        cmsg._replace(binding_factors=[bf0._replace(rho=Scalar(1)), bf1]),
        cmsg._replace(msg=MSG + b"!"),
        cmsg._replace(commitments=cmsg.commitments[::-1]),
        cmsg._replace(commitments=[commitments[0], other]),
    ]
    for bad in bad_msgs:
        with pytest.raises(FaultyCoordinatorError):
            signers[0].sign(bad)
        assert signers[0].state is SessionState.NONCE_COMMITTED

    # Signer 2's commitment was replaced.
    with pytest.raises(FaultyCoordinatorError):
        signers[1].sign(
            CoordinatorMsg(
                MSG,
                [commitments[0], other],
                compute_binding_factors(coord.group_pk, [commitments[0], other], MSG),
                cmsg.challenge,
            )
        )

    coord.aggregate([s.sign(cmsg) for s in signers[:2]])
    assert coord.verify()


def test_coordinator_without_pubshares_rejects_signature():
    signers, coord = make_roles(2, 3, pubshares=False)
    coord.start(MSG)
    cmsg = coord.receive_commitments([s.commit() for s in signers])
    sigshares = [s.sign(cmsg) for s in signers]
    sigshares[0] = sigshares[0]._replace(z=sigshares[0].z + Scalar(1))
    coord.aggregate(sigshares)
    assert not coord.verify()
    assert coord.state is SessionState.REJECTED


def test_roles_blind_signer():
    _, group_pk, secshares, com = deal(2, 3)
    signers = [
        Signer(secshares[0], group_pk, random_bytes=Random(1).randbytes),
        Signer(secshares[2], group_pk, is_blind=True, random_bytes=Random(2).randbytes),
    ]
    coord = Coordinator(
        SessionParams(2, 3), group_pk, [com.pubshare(i) for i in range(1, 4)]
    )
    coord.start(MSG)
    commitments = [s.commit() for s in signers]
    assert commitments[1].E.infinity
    cmsg = coord.receive_commitments(commitments)
    coord.aggregate([s.sign(cmsg) for s in signers])
    assert coord.verify()


#
# Simulated sessions
#


def test_simulate_frost_full():
    signers, coord = make_roles(3, 5)
    signature = simulate_frost_full(signers[1:4], coord, MSG)
    assert coord.verify(signature)
    assert verify_message(signature, coord.group_pk, MSG)


def test_simulate_frost_full_faulty_signer():
    signers, coord = make_roles(3, 5)
    with pytest.raises(InvalidContributionError) as e:
        simulate_frost_full(signers[:3], coord, MSG, faulty_idx=2)
    assert e.value.participant == 3
