import sys

from rich.console import Console

from client_io import ClientListener
from errors import ConfigurationError
from orchestrator import Orchestrator, SessionConfig

err_console = Console(stderr=True)

USAGE = (
    "Usage: kmeans-party <my number (0/1/...)> <total number of parties> "
    "<number of n data points per client> <dimensions of data points> "
    "<number of k centroids per client> <optional: port base>"
)


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv

    if len(argv) < 5:
        err_console.print(USAGE, markup=False)
        sys.exit(1)

    try:
        party_index, num_parties, n_size, dim, k_size = (int(each) for each in argv[:5])
        port_base = int(argv[5]) if len(argv) > 5 else 14000
        config = SessionConfig(
            party_index,
            num_parties,
            n_size=n_size,
            k_size=k_size,
            dim=dim,
            port_base=port_base,
        )
    except (ValueError, ConfigurationError) as e:
        err_console.print(str(e), markup=False)
        sys.exit(1)

    listener = ClientListener(
        party_index, config.domain, n_size, k_size, dim, port_base=port_base
    )
    Orchestrator(config, listener=listener).run()


if __name__ == "__main__":
    main()
