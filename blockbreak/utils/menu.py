from blockbreak.models import (AttackParams, bcolors)
from blockbreak.utils.keystore import (create_keystore, list_contexts)
from blockbreak.scenarios import (SCENARIOS, attack_sealed, run_scenario, seal_context)
from blockbreak.victims import (UNRESERVED_CHARS)

# -----------------------------
# Interactive Configuration Helpers
# -----------------------------
def options() -> AttackParams:
    """
    Interactive attack parameter configuration.

    Blank answers keep the defaults:
    - Probe byte: grows inputs while measuring output lengths
    - Filler byte: known plaintext for alignment and bit-flipping
    - Maximum block size: detection gives up beyond this
    """
    defaults = AttackParams()
    probe = int(input(f"Probe byte (default {defaults.probe_byte}): ").strip() or defaults.probe_byte)
    filler = input(f"Filler character (default {chr(defaults.filler_byte)}): ").strip() or chr(defaults.filler_byte)
    if len(filler) != 1 or ord(filler) not in UNRESERVED_CHARS:
        raise ValueError(f"Filler must be one unreserved character (a letter, a digit or one of -._~), got {filler!r}")
    max_block_size = int(input(f"Maximum block size (default {defaults.max_block_size}): ").strip() or defaults.max_block_size)
    return AttackParams(
        probe_byte=probe,
        alt_probe_byte=probe ^ 0x01,
        filler_byte=ord(filler),
        max_block_size=max_block_size,
    )

# -----------------------------
# Menu Actions
# -----------------------------
def menu_generate_keystore():
    passphrase = input("Enter keystore passphrase: ")
    keystore_file = input("Keystore filename (default keystore.pkl): ").strip() or "keystore.pkl"
    create_keystore(passphrase, keystore_file)

def menu_run_scenario():
    """
    Pick one attack scenario, or all of them, and run it against a freshly
    generated victim.
    """
    names = list(SCENARIOS)
    for index, name in enumerate(names, start=1):
        print(f"{bcolors.BOLD}{index}){bcolors.ENDC} {name}")
    choice = input("Scenario number or name (blank = all): ").strip()
    params = options()

    if not choice:
        selected = names
    elif choice.isdigit() and 1 <= int(choice) <= len(names):
        selected = [names[int(choice) - 1]]
    else:
        selected = [choice]

    passed = sum(run_scenario(name, params) for name in selected)
    print(f"{passed}/{len(selected)} scenarios succeeded")

def menu_seal_context():
    """
    Seal a random ECB context so it can be attacked later from the keystore.
    """
    keystore_file = input("Keystore filename (default keystore.pkl): ").strip() or "keystore.pkl"
    passphrase = input("Keystore passphrase: ")
    name = input("Context name: ").strip()
    secret = input("Secret suffix (blank = default lyrics): ").encode()
    with_prefix = input("Add random prefix of 1-200 bytes? (y/n) [n]: ").strip().lower() == "y"

    kwargs = {"prefix_range": (1, 200) if with_prefix else None}
    if secret:
        kwargs["suffix"] = secret
    seal_context(passphrase, name, keystore_file, **kwargs)

def menu_attack_sealed():
    keystore_file = input("Keystore filename (default keystore.pkl): ").strip() or "keystore.pkl"
    print("Sealed contexts:", ", ".join(list_contexts(keystore_file)) or "(none)")
    passphrase = input("Keystore passphrase: ")
    name = input("Context name: ").strip()
    attack_sealed(passphrase, name, keystore_file, options())
