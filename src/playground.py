import sys
from concurrent.futures import ThreadPoolExecutor

from rich.console import Console

from errors import ConfigurationError
from network import LocalNetwork
from orchestrator import Orchestrator, SessionConfig

console = Console()
err_console = Console(stderr=True)

USAGE = "Usage: mpc-playground <my number (0/1/...)> <total number of parties> <optional: port base> [--local]"

N_SIZE = 99
K_SIZE = 12
DIM = 3


def run_local(n_size=N_SIZE, k_size=K_SIZE, dim=DIM, seed=None, **kwargs):
    """
    Run all three parties in this process over in-memory channels.

    Returns:
        list: the revealed outputs of each party.
    """
    network = LocalNetwork(3)
    orchestrators = [
        Orchestrator(
            SessionConfig(i, n_size=n_size, k_size=k_size, dim=dim, seed=seed, **kwargs),
            player=network.player(i),
        )
        for i in range(3)
    ]
    with ThreadPoolExecutor(max_workers=3) as pool:
        futures = [pool.submit(each.run) for each in orchestrators]
        return [future.result() for future in futures]


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    local = "--local" in argv
    argv = [each for each in argv if each != "--local"]

    if local:
        outputs = run_local()
        console.print(f"Revealed K at party 0:\n{outputs[0]['K']}")
        return

    if len(argv) < 2:
        err_console.print(USAGE, markup=False)
        sys.exit(1)

    try:
        party_index = int(argv[0])
        num_parties = int(argv[1])
        port_base = int(argv[2]) if len(argv) > 2 else 14000
        config = SessionConfig(
            party_index,
            num_parties,
            n_size=N_SIZE,
            k_size=K_SIZE,
            dim=DIM,
            port_base=port_base,
        )
    except (ValueError, ConfigurationError) as e:
        err_console.print(str(e), markup=False)
        sys.exit(1)

    Orchestrator(config).run()


if __name__ == "__main__":
    main()
