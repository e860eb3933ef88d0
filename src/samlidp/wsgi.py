import argparse
import os
import sys

from werkzeug.serving import run_simple

from samlidp.idp_config import IdPConfig
from samlidp.server import make_app

config_file = os.environ.get("SAMLIDP_CONFIG", "idp_conf.yaml")
idp_config = IdPConfig(config_file)
app = make_app(idp_config)


def main():
    global app

    parser = argparse.ArgumentParser(description="Run the SAML IdP with the development server.")
    parser.add_argument("port", type=int)
    parser.add_argument("--keyfile", type=str)
    parser.add_argument("--certfile", type=str)
    parser.add_argument("--host", type=str)
    args = parser.parse_args()

    if (args.keyfile and not args.certfile) or (args.certfile and not args.keyfile):
        print("Both keyfile and certfile must be specified for HTTPS.")
        sys.exit(1)

    ssl_context = (
        (args.certfile, args.keyfile)
        if args.keyfile and args.certfile
        else None
    )
    host = args.host or "localhost"
    run_simple(host, args.port, app, ssl_context=ssl_context)


if __name__ == "__main__":
    main()
