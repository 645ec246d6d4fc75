import json
import os
import sys
from tempfile import TemporaryDirectory

from jupyter_client.kernelspec import KernelSpecManager

kernel_json = {
    "argv": [
        sys.executable,
        "-m", "lc3vm",
        "-f", "{connection_file}"
    ],
    "display_name": "LC3 VM",
    "language": "lc3vm",
}

def install_my_kernel_spec(user=True, prefix=None):
    with TemporaryDirectory() as td:
        os.chmod(td, 0o755) # Starts off as 700, not user readable
        with open(os.path.join(td, 'kernel.json'), 'w') as f:
            json.dump(kernel_json, f, sort_keys=True)

        print('Installing Jupyter kernel spec')
        KernelSpecManager().install_kernel_spec(td, 'lc3vm', user=user, prefix=prefix)

def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    install_my_kernel_spec(user="--sys-prefix" not in argv,
                           prefix=sys.prefix if "--sys-prefix" in argv else None)

if __name__ == '__main__':
    main()
