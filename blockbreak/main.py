import os
import sys
import logging
import argparse
from blockbreak.utils.keystore import (create_keystore)
from blockbreak.utils.menu import(
    menu_generate_keystore, menu_run_scenario, menu_seal_context, menu_attack_sealed
    )
from blockbreak.models import (AttackParams, bcolors)
from blockbreak.scenarios import (SCENARIOS, attack_sealed, run_scenario, seal_context)
from blockbreak.victims import (UNRESERVED_CHARS)

def _byte(value: str) -> int:
    byte = int(value, 0)
    if not 0 <= byte <= 255:
        raise argparse.ArgumentTypeError(f"{value} is not a byte value")
    return byte

def _char(value: str) -> int:
    if len(value) != 1 or ord(value) not in UNRESERVED_CHARS:
        raise argparse.ArgumentTypeError("filler must be one unreserved character: a letter, a digit or one of -._~")
    return ord(value)

def add_attack_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("--probe-byte", type=_byte, default=AttackParams.probe_byte, help="Byte used to grow probe inputs")
    parser.add_argument("--filler", type=_char, default=AttackParams.filler_byte, help="Filler character for alignment")
    parser.add_argument("--max-block-size", type=int, default=AttackParams.max_block_size)

def attack_params(args) -> AttackParams:
    return AttackParams(
        probe_byte=args.probe_byte,
        alt_probe_byte=args.probe_byte ^ 0x01,
        filler_byte=args.filler,
        max_block_size=args.max_block_size,
    )

def main(argv=None):
    parser = argparse.ArgumentParser(description="blockbreak - AES mode oracles and the attacks that break them")
    parser.add_argument("--verbose", action="store_true", help="Log every probe")
    subparsers = parser.add_subparsers(dest="command")

    scenario_parser = subparsers.add_parser("scenario", help="Run attack scenarios against fresh victims")
    scenario_parser.add_argument("names", nargs="*", choices=list(SCENARIOS) + ["all"], default="all")
    add_attack_arguments(scenario_parser)

    create_keystore_parser = subparsers.add_parser("create_keystore", help="Create encrypted keystore")
    create_keystore_parser.add_argument("--passphrase", required=True, help="Keystore passphrase")
    create_keystore_parser.add_argument("--keystore_file", default="keystore.pkl", help="Keystore filename")

    seal_parser = subparsers.add_parser("seal", help="Seal a random ECB context in a keystore")
    seal_parser.add_argument("--passphrase", required=True)
    seal_parser.add_argument("--keystore_file", default="keystore.pkl")
    seal_parser.add_argument("--name", required=True, help="Context name in keystore")
    seal_parser.add_argument("--secret", help="Suffix to hide (default: built-in lyrics)")
    seal_parser.add_argument("--random_prefix", action="store_true", help="Prepend 1-200 random bytes")

    attack_parser = subparsers.add_parser("attack_sealed", help="Decrypt the suffix of a sealed context")
    attack_parser.add_argument("--passphrase", required=True)
    attack_parser.add_argument("--keystore_file", default="keystore.pkl")
    attack_parser.add_argument("--name", required=True)
    add_attack_arguments(attack_parser)

    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s %(levelname)s %(message)s")

    try:
        match args.command:
            case "scenario":
                names = args.names if isinstance(args.names, list) else [args.names]
                if not names or "all" in names:
                    names = list(SCENARIOS)
                params = attack_params(args)
                failed = [name for name in names if not run_scenario(name, params)]
                if failed:
                    print(f"{bcolors.FAIL}ERROR:{bcolors.ENDC} failed: {', '.join(failed)}")
                    sys.exit(1)
            case "create_keystore":
                create_keystore(args.passphrase, args.keystore_file)
            case "seal":
                kwargs = {"prefix_range": (1, 200) if args.random_prefix else None}
                if args.secret:
                    kwargs["suffix"] = args.secret.encode()
                seal_context(args.passphrase, args.name, args.keystore_file, **kwargs)
            case "attack_sealed":
                if not attack_sealed(args.passphrase, args.name, args.keystore_file, attack_params(args)):
                    print(f"{bcolors.FAIL}ERROR:{bcolors.ENDC} recovered suffix of {args.name} does not match")
                    sys.exit(1)
            case _:
                _=os.system("cls") | os.system("clear")
                while True:
                    print(f"{bcolors.WARNING}{bcolors.BOLD}blockbreak - AES mode oracles and the attacks that break them{bcolors.ENDC}")
                    print(f"{bcolors.GREY}{bcolors.BOLD}[##][##][##]{bcolors.OKCYAN}========================================-{bcolors.ENDC}")
                    print("")
                    print(f"{bcolors.BOLD}1){bcolors.ENDC} Run attack scenarios")
                    print(f"{bcolors.BOLD}2){bcolors.ENDC} Create encrypted keystore")
                    print(f"{bcolors.BOLD}3){bcolors.ENDC} Seal a secret context")
                    print(f"{bcolors.BOLD}4){bcolors.ENDC} Attack a sealed context")
                    print(f"{bcolors.BOLD}0){bcolors.ENDC} Exit")
                    print("")
                    choice = input(f"{bcolors.BOLD}Choice: {bcolors.ENDC}").strip()
                    try:
                        match choice:
                            case "0":
                                break
                            case "1":
                                menu_run_scenario()
                            case "2":
                                menu_generate_keystore()
                            case "3":
                                menu_seal_context()
                            case "4":
                                menu_attack_sealed()
                            case _:
                                print("Invalid choice")
                    except Exception as e:
                        print(f"{bcolors.FAIL}ERROR:{bcolors.ENDC}", e)
                    _=input(f"{bcolors.OKGREEN}Enter to continue...{bcolors.ENDC}")
                    _=os.system("cls") | os.system("clear")
    except Exception as e:
        print(f"{bcolors.FAIL}ERROR:{bcolors.ENDC}", e)
        sys.exit(1)

if __name__ == "__main__":
    main()
