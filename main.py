"""
ZeroTrust Gate – Adaptive Authentication Decision Engine
Entry point for local demonstration.

Runs two components:
1. FastAPI backend server (on port 8000) in a separate process
2. Demo client in the main process that types a password with simulated
   keystroke timing, applies the environment toggles, logs in and, if
   challenged, completes the step-up challenge

Use Ctrl+C to terminate.
"""

import argparse
import dataclasses
import logging
import multiprocessing
import random
import sys
import time

import requests

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("zerotrust")

# ----------------------------------------------------------------------
# Configuration
# ----------------------------------------------------------------------

class Config:
    """Configuration settings for ZeroTrust Gate."""

    # Server settings
    SERVER_HOST = "127.0.0.1"
    SERVER_PORT = 8000
    SERVER_URL = f"http://{SERVER_HOST}:{SERVER_PORT}"
    DATABASE_URL = None          # None = zerotrust.db in the project root

    # Policy
    APPROVAL_THRESHOLD = 70
    MAX_CODE_ATTEMPTS = 5
    CODE_TTL = 300.0             # Seconds a one-time code stays valid
    PUSH_TIMEOUT = 60.0          # Seconds before a push approval expires

    # Demo client settings
    DEMO_IDENTIFIER = "demo@zerotrust.dev"
    DEMO_SECRET = "ZeroTrust2025!"
    MEAN_FLIGHT_MS = 120.0       # Typical gap between keys
    FLIGHT_JITTER_MS = 15.0      # Raise to simulate erratic typing


def build_policy(config=Config):
    from engine.policy import AuthPolicy
    return AuthPolicy(
        approval_threshold=config.APPROVAL_THRESHOLD,
        max_code_attempts=config.MAX_CODE_ATTEMPTS,
        code_ttl=config.CODE_TTL,
        push_timeout=config.PUSH_TIMEOUT,
    )


# ----------------------------------------------------------------------
# 1. FastAPI Server Process
# ----------------------------------------------------------------------

def run_server(host: str, port: int, policy_kwargs: dict, database_url=None):
    """Start Uvicorn server for the FastAPI application."""
    import uvicorn
    from engine.policy import AuthPolicy
    from server.api import create_app
    from server.challenge_channel import SimulatedChallengeChannel
    from server.credential_validator import InMemoryCredentialValidator
    from server.registry import SessionRegistry

    policy = AuthPolicy(**policy_kwargs)
    registry = SessionRegistry(
        InMemoryCredentialValidator(min_secret_length=policy.min_secret_length),
        SimulatedChallengeChannel,
        policy=policy,
    )
    app_kwargs = {"database_url": database_url} if database_url else {}
    app = create_app(registry=registry, **app_kwargs)

    logger.info(f"[Server] Starting on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="info")


# ----------------------------------------------------------------------
# 2. Demo Client Process
# ----------------------------------------------------------------------

def simulate_typing(secret: str, mean_flight: float, jitter: float, start: float = 0.0):
    """
    Produce press/release events for `secret` with Gaussian flight times.
    Timestamps are in milliseconds.
    """
    events = []
    t = start
    for char in secret:
        t += max(0.0, random.gauss(mean_flight, jitter))
        events.append({"timestamp": t, "type": "key_press", "key": char})
        t += max(10.0, random.gauss(90.0, 10.0))
        events.append({"timestamp": t, "type": "key_release", "key": char})
    return events


def wait_for_server(base_url: str, attempts: int = 10) -> bool:
    for _ in range(attempts):
        try:
            resp = requests.get(f"{base_url}/health", timeout=1)
            if resp.status_code == 200:
                return True
        except requests.exceptions.ConnectionError:
            pass
        time.sleep(1)
    return False


def run_demo(base_url: str, identifier: str, secret: str, factors: dict,
             mean_flight: float, jitter: float, use_push: bool = False):
    """
    Drive one login attempt through the API and print the outcome.
    """
    if not wait_for_server(base_url):
        logger.error("[Client] Server not responding")
        return

    session = requests.post(f"{base_url}/sessions", timeout=2).json()
    session_id = session["session_id"]
    logger.info(f"[Client] Session ID: {session_id}")

    resp = requests.put(f"{base_url}/sessions/{session_id}/factors", json=factors, timeout=2)
    resp.raise_for_status()

    events = simulate_typing(secret, mean_flight, jitter)
    snapshot = requests.post(f"{base_url}/sessions/{session_id}/keystrokes",
                             json={"events": events}, timeout=2).json()
    logger.info(f"[Client] Typed {len(secret)} keys, consistency "
                f"{snapshot['factors']['typing_consistency']}%, score {snapshot['trust_score']}")

    resp = requests.post(f"{base_url}/sessions/{session_id}/login",
                         json={"identifier": identifier, "secret": secret}, timeout=5)
    if resp.status_code != 200:
        logger.error(f"[Client] Login rejected: {resp.json()['detail']}")
        return

    report = resp.json()
    for stage in report["stages"]:
        marker = "⚠️ " if stage["at_risk"] else "✅"
        print(f"{marker} {stage['stage']}: {stage['status']}")

    if report["decision"] == "challenge_required":
        print(f"🔐 Trust score {report['trust_score']} – step-up challenge required")
        if use_push:
            requests.post(f"{base_url}/sessions/{session_id}/challenge/push", timeout=2).raise_for_status()
            requests.post(f"{base_url}/sessions/{session_id}/challenge/push/approve", timeout=2)
            snapshot = requests.get(f"{base_url}/sessions/{session_id}/challenge/push", timeout=2).json()
        else:
            from server.challenge_channel import DEMO_CODE
            resp = requests.post(f"{base_url}/sessions/{session_id}/challenge/code",
                                 json={"code": DEMO_CODE}, timeout=2)
            snapshot = resp.json() if resp.status_code == 200 else requests.get(
                f"{base_url}/sessions/{session_id}", timeout=2).json()
        print(f"Final state: {snapshot['state']}")
        granted = snapshot["access_granted"]
    else:
        print(f"🟢 Trust score {report['trust_score']} – access approved")
        granted = True

    if granted and report.get("profile"):
        print(f"Signed in as {report['profile']['name']} ({report['profile']['role']})")

    decisions = requests.get(f"{base_url}/sessions/{session_id}/decisions", timeout=2).json()
    print(f"Audit trail: {[d['state'] for d in decisions]}")


# ----------------------------------------------------------------------
# 3. Main Orchestrator
# ----------------------------------------------------------------------

def parse_arguments():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="ZeroTrust Gate adaptive authentication demo")
    parser.add_argument("--server-only", action="store_true",
                        help="Run the API server without the demo client")
    parser.add_argument("--port", type=int, default=Config.SERVER_PORT,
                        help=f"API port (default: {Config.SERVER_PORT})")
    parser.add_argument("--unknown-device", action="store_true",
                        help="Simulate an unrecognised device fingerprint")
    parser.add_argument("--new-location", action="store_true",
                        help="Simulate a login from a new location")
    parser.add_argument("--vpn", action="store_true",
                        help="Simulate VPN/proxy detection")
    parser.add_argument("--jitter", type=float, default=Config.FLIGHT_JITTER_MS,
                        help="Flight time jitter in ms (high values lower consistency)")
    parser.add_argument("--push", action="store_true",
                        help="Answer challenges with push approval instead of the code")
    parser.add_argument("--max-attempts", type=int, default=Config.MAX_CODE_ATTEMPTS,
                        help="Wrong codes allowed per challenge")
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_arguments()

    # Update config
    Config.SERVER_PORT = args.port
    Config.SERVER_URL = f"http://{Config.SERVER_HOST}:{Config.SERVER_PORT}"
    Config.FLIGHT_JITTER_MS = args.jitter
    Config.MAX_CODE_ATTEMPTS = args.max_attempts

    print("\n" + "=" * 70)
    print("🛡️  ZEROTRUST GATE - Adaptive Authentication")
    print("=" * 70)
    print(f"Server: {Config.SERVER_URL}")
    print(f"Approval threshold: {Config.APPROVAL_THRESHOLD}")
    print("=" * 70 + "\n")

    try:
        multiprocessing.set_start_method("spawn", force=True)
    except RuntimeError:
        pass

    policy_kwargs = dataclasses.asdict(build_policy())
    server_process = multiprocessing.Process(
        target=run_server,
        args=(Config.SERVER_HOST, Config.SERVER_PORT, policy_kwargs, Config.DATABASE_URL),
        name="Server",
    )
    server_process.start()

    if args.server_only:
        try:
            server_process.join()
        except KeyboardInterrupt:
            server_process.terminate()
            server_process.join(timeout=3.0)
        sys.exit(0)

    factors = {
        "is_known_device": not args.unknown_device,
        "is_known_location": not args.new_location,
        "is_vpn_detected": args.vpn,
    }
    try:
        run_demo(
            Config.SERVER_URL,
            Config.DEMO_IDENTIFIER,
            Config.DEMO_SECRET,
            factors,
            Config.MEAN_FLIGHT_MS,
            Config.FLIGHT_JITTER_MS,
            use_push=args.push,
        )
    except KeyboardInterrupt:
        print("\n[Main] ⚡ Shutdown signal received")
    finally:
        if server_process.is_alive():
            server_process.terminate()
            server_process.join(timeout=3.0)
        print("[Main] ✅ Shutdown complete")
