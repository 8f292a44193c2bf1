"""
Envelope S3 Benchmark CLI.

Usage:
    envelope-s3-benchmark [count]

Or run directly:
    python -m envelope_s3.benchmark

Master keys:
    Set ENVELOPE_MASTER_KEY_FILES (environment or .env file) to benchmark with
    your own RSA keys; otherwise fresh keys are generated for the run.
"""

from __future__ import annotations

import os
import sys
import time
from typing import Dict, List, Optional

from dotenv import load_dotenv

from envelope_s3.config import EncryptionConfig
from envelope_s3.encryption_client import EncryptionClient
from envelope_s3.keys import MasterKeyRing, RsaMasterKey
from envelope_s3.storage import InMemoryStorage

BUCKET = "benchmark"
DEFAULT_COUNT = 125
PAYLOAD_SIZE = 4096


def _rate(count: int, duration: float) -> float:
    return count / max(duration, 1e-9)


def _banner(title: str) -> None:
    print("+" + "-" * 68 + "+")
    print(f"|  {title}" + " " * max(0, 66 - len(title)) + "|")
    print("+" + "-" * 68 + "+")


def run_benchmark(count: Optional[int] = None) -> Dict[str, float]:
    """
    Run the envelope encryption benchmark.

    Returns:
        Measured rates in operations per second, keyed by operation
    """
    print("=== Envelope S3 Benchmark ===\n")

    load_dotenv()

    if os.environ.get("ENVELOPE_MASTER_KEY_FILES"):
        config = EncryptionConfig.from_env()
        print(f"[STARTUP] Loaded {len(config.keyring)} master key(s) from environment")
    else:
        start = time.perf_counter()
        config = EncryptionConfig.with_master_key(RsaMasterKey.generate())
        print(f"[STARTUP] Generated RSA master key in {(time.perf_counter() - start) * 1000:.3f}ms")

    if count is None:
        try:
            user_input = input(f"Enter number of objects to test (default: {DEFAULT_COUNT}): ").strip()
            count = int(user_input) if user_input else DEFAULT_COUNT
        except (ValueError, EOFError):
            count = DEFAULT_COUNT
    print(f"Testing with {count} objects\n")

    storage = InMemoryStorage()
    client = EncryptionClient(storage, config)
    payload = os.urandom(PAYLOAD_SIZE)
    keys: List[str] = [f"object-{i:06d}.bin" for i in range(count)]

    print("=" * 70)
    print("                    BENCHMARK START")
    print("=" * 70 + "\n")

    # ========================================================================
    # Demo 1: Encrypted writes
    # ========================================================================
    _banner(f"Demo 1: Write {count} Encrypted Objects")

    demo1_start = time.perf_counter()
    for i, key in enumerate(keys):
        client.put(BUCKET, key, payload)
        if (i + 1) % 25 == 0 or (i + 1) == count:
            print(f"  Progress: {i + 1}/{count}")
    demo1_duration = time.perf_counter() - demo1_start

    print(f"[OK] Wrote {count} objects ({PAYLOAD_SIZE} bytes each)")
    print(f"[PERF] Time: {demo1_duration * 1000:.3f}ms | Rate: {_rate(count, demo1_duration):.2f} ops/sec\n")

    # ========================================================================
    # Demo 2: Decrypting reads
    # ========================================================================
    _banner(f"Demo 2: Read {count} Encrypted Objects")

    demo2_start = time.perf_counter()
    for key in keys:
        if client.read_object(BUCKET, key) != payload:
            print(f"[ERROR] Content mismatch for {key}")
            sys.exit(1)
    demo2_duration = time.perf_counter() - demo2_start

    print(f"[OK] Read and verified {count} objects")
    print(f"[PERF] Time: {demo2_duration * 1000:.3f}ms | Rate: {_rate(count, demo2_duration):.2f} ops/sec\n")

    # ========================================================================
    # Demo 3: Master key rotation + rekey
    # ========================================================================
    _banner("Demo 3: Master Key Rotation + Rekey")

    old_key = config.keyring.current
    rotated = EncryptionConfig(config.keyring.rotated(RsaMasterKey.generate()), key_size=config.key_size)
    rotated_client = EncryptionClient(storage, rotated)

    demo3_start = time.perf_counter()
    rekeyed = sum(1 for key in keys if rotated_client.rekey(BUCKET, key).rekeyed)
    demo3_duration = time.perf_counter() - demo3_start

    print(f"[OK] Rekeyed {rekeyed} objects from master key {old_key.key_id[:12]}...")
    print(f"[PERF] Time: {demo3_duration * 1000:.3f}ms | Rate: {_rate(count, demo3_duration):.2f} ops/sec\n")

    # ========================================================================
    # Demo 4: Rekey is idempotent
    # ========================================================================
    _banner("Demo 4: Second Rekey Pass")

    demo4_start = time.perf_counter()
    skipped = sum(1 for key in keys if not rotated_client.rekey(BUCKET, key).rekeyed)
    demo4_duration = time.perf_counter() - demo4_start

    print(f"[OK] {skipped}/{count} objects already used the current master key")
    print(f"[PERF] Time: {demo4_duration * 1000:.3f}ms\n")

    # ========================================================================
    # Demo 5: Old key retired
    # ========================================================================
    _banner("Demo 5: Read With New Master Key Only")

    new_only = EncryptionClient(storage, EncryptionConfig(MasterKeyRing(rotated.keyring.current)))
    demo5_start = time.perf_counter()
    for key in keys:
        if new_only.read_object(BUCKET, key) != payload:
            print(f"[ERROR] Content mismatch for {key}")
            sys.exit(1)
    demo5_duration = time.perf_counter() - demo5_start

    print("[OK] All objects readable without the old master key")
    print(f"[PERF] Time: {demo5_duration * 1000:.3f}ms | Rate: {_rate(count, demo5_duration):.2f} ops/sec\n")

    # ========================================================================
    # Summary
    # ========================================================================
    rates = {
        "write": _rate(count, demo1_duration),
        "read": _rate(count, demo2_duration),
        "rekey": _rate(count, demo3_duration),
    }

    print("=" * 70)
    print("                    BENCHMARK SUMMARY")
    print("=" * 70 + "\n")

    leftover = [key for key in storage.list_keys(BUCKET) if key.endswith(config.temp_suffix)]
    print(f"Objects stored: {len(storage.list_keys(BUCKET))} (temp objects left: {len(leftover)})")

    print("\n+- Performance Summary ---------------------------------------------+")
    print("|                                                                    |")
    for name, rate in rates.items():
        text = f"{rate:.2f}"
        print(f"|  {name.capitalize() + ':':<18}{text} ops/sec" + " " * (38 - len(text)) + "|")
    print("|                                                                    |")
    print("+--------------------------------------------------------------------+")

    print("\nTest Configuration:")
    print(f"  - Total objects tested: {count}")
    print(f"  - Crypto: AES-{config.key_size}-GCM content, RSA-OAEP wrapped keys")
    print("  - Write path: PUT temp -> COPY final -> DELETE temp")

    print("\n" + "=" * 70)
    print("                    BENCHMARK COMPLETE")
    print("=" * 70 + "\n")

    return rates


def main() -> None:
    """CLI entry point for envelope-s3-benchmark command."""
    count = int(sys.argv[1]) if len(sys.argv) > 1 else None
    run_benchmark(count)


if __name__ == "__main__":
    main()
