#!/usr/bin/env python3

"""Example of a full FROST signing session"""

from typing import List, Optional, Sequence
import asyncio
import argparse
import logging
import pprint
from random import randint, sample
from secrets import token_bytes as random_bytes
import sys

from secp256k1lab.secp256k1 import GE, Scalar

from frost_ref.frost import (
    Signer,
    Coordinator,
    CoordinatorMsg,
    SessionParams,
    InvalidContributionError,
)
from frost_ref.shamir import SecretShare, trusted_dealer_keygen
from frost_ref.signing import Signature, SignatureShare

logger = logging.getLogger(__name__)

#
# Network mocks to simulate full signing sessions
#


class CoordinatorChannels:
    def __init__(self, n):
        self.n = n
        self.queues = []
        for i in range(n):
            self.queues += [asyncio.Queue()]

    def set_participant_queues(self, participant_queues):
        self.participant_queues = participant_queues

    def send_all(self, m):
        assert self.participant_queues is not None
        for i in range(self.n):
            self.participant_queues[i].put_nowait(m)

    async def receive_from(self, i):
        item = await self.queues[i].get()
        return item


class ParticipantChannel:
    def __init__(self, coord_queue):
        self.queue = asyncio.Queue()
        self.coord_queue = coord_queue

    # Send m to coordinator
    def send(self, m):
        self.coord_queue.put_nowait(m)

    async def receive(self):
        item = await self.queue.get()
        return item


#
# Helper functions
#


def pphex(thing):
    """Pretty print an object with bytes, scalars and points as hex strings"""

    def hexlify(thing):
        if isinstance(thing, bytes):
            return thing.hex()
        if isinstance(thing, Scalar):
            return thing.to_bytes().hex()
        if isinstance(thing, GE):
            return thing.to_bytes_compressed_with_infinity().hex()
        if isinstance(thing, dict):
            return {k: hexlify(v) for k, v in thing.items()}
        if hasattr(thing, "_asdict"):  # NamedTuple
            return hexlify(thing._asdict())
        if isinstance(thing, List):
            return [hexlify(v) for v in thing]
        return thing

    pprint.pp(hexlify(thing))


#
# Protocol parties
#


async def signer(chan: ParticipantChannel, s: Signer) -> SignatureShare:
    chan.send(s.commit())
    cmsg: CoordinatorMsg = await chan.receive()
    sigshare = s.sign(cmsg)
    chan.send(sigshare)
    return sigshare


# This is a dummy signer used to demonstrate blame of a faulty signer. It sends
# a signature share which is off by a non-zero scalar.
async def faulty_signer(chan: ParticipantChannel, s: Signer) -> SignatureShare:
    chan.send(s.commit())
    cmsg: CoordinatorMsg = await chan.receive()
    identifier, z = s.sign(cmsg)
    sigshare = SignatureShare(identifier, z + Scalar(17))
    chan.send(sigshare)
    return sigshare


async def coordinator(
    chans: CoordinatorChannels, coord: Coordinator, msg: bytes
) -> Signature:
    coord.start(msg)
    commitments = []
    for i in range(chans.n):
        commitments.append(await chans.receive_from(i))
    cmsg = coord.receive_commitments(commitments)
    chans.send_all(cmsg)

    sigshares = []
    for i in range(chans.n):
        sigshares += [await chans.receive_from(i)]
    return coord.aggregate(sigshares)


#
# Signing session
#


def simulate_frost_full(
    signers: Sequence[Signer],
    coord: Coordinator,
    msg: bytes,
    faulty_idx: Optional[int] = None,
) -> Signature:
    # Runs one session with all given signers. `faulty_idx` is a position in
    # `signers`.
    n = len(signers)
    logger.debug("Simulating session with %d signers", n)

    async def session():
        coord_chans = CoordinatorChannels(n)
        participant_chans = [
            ParticipantChannel(coord_chans.queues[i]) for i in range(n)
        ]
        coord_chans.set_participant_queues(
            [participant_chans[i].queue for i in range(n)]
        )
        coroutines = [coordinator(coord_chans, coord, msg)] + [
            signer(participant_chans[i], signers[i])
            if i != faulty_idx
            else faulty_signer(participant_chans[i], signers[i])
            for i in range(n)
        ]
        return await asyncio.gather(*coroutines)

    outputs = asyncio.run(session())
    return outputs[0]


def deal(t: int, n: int):
    secret = Scalar.from_bytes_wrapping(random_bytes(32))
    group_pk, secshares, com = trusted_dealer_keygen(secret, t, n)
    for share in secshares:
        assert com.verify_secshare(share)
    pubshares = [com.pubshare(i) for i in range(1, n + 1)]
    return group_pk, secshares, pubshares


def main():
    parser = argparse.ArgumentParser(description="FROST signing example")
    parser.add_argument(
        "--faulty-signer",
        action="store_true",
        help="When this flag is set, one random signer will send an invalid signature share, and the coordinator will identify it.",
    )
    parser.add_argument(
        "--blind",
        type=int,
        default=0,
        help="Number of signers which contribute no binding nonce (experimental) [default = 0]",
    )
    parser.add_argument(
        "--message", default="asia is underrated", help="Message to sign"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log protocol steps"
    )
    parser.add_argument(
        "t", nargs="?", type=int, default=3, help="Signing threshold [default = 3]"
    )
    parser.add_argument(
        "n", nargs="?", type=int, default=5, help="Number of participants [default = 5]"
    )
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    t = args.t
    n = args.n
    msg = args.message.encode()

    print("====== FROST example session ======")
    print(f"Using n = {n} participants and a threshold of t = {t}.")

    params = SessionParams(t, n)
    group_pk, secshares, pubshares = deal(t, n)

    # Any t of the n participants can sign.
    chosen: List[SecretShare] = sorted(sample(secshares, t))
    signers = [
        Signer(share, group_pk, is_blind=i >= t - args.blind)
        for i, share in enumerate(chosen)
    ]
    faulty_idx = randint(0, t - 1) if args.faulty_signer else None
    print(f"Signers: {[share.index for share in chosen]}")
    if faulty_idx is not None:
        print(f"Signer {chosen[faulty_idx].index} is faulty.")
    print()

    print("=== Group public key ===")
    pphex(group_pk)
    print()

    coord = Coordinator(params, group_pk, pubshares)
    try:
        signature = simulate_frost_full(signers, coord, msg, faulty_idx)
    except InvalidContributionError as e:
        print(f"The coordinator is blaming signer {e.participant}.")
        # If the blamed signer is the faulty signer, exit with code 0.
        # Otherwise, re-raise the exception.
        if faulty_idx is not None and chosen[faulty_idx].index == e.participant:
            return 0
        else:
            raise

    print("=== Signature ===")
    pphex(signature)
    print()
    valid = coord.verify(signature)
    print(f"Signature verification result: {valid}")
    return 0 if valid else 1


if __name__ == "__main__":
    sys.exit(main())
