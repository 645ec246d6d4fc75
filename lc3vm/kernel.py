from metakernel import MetaKernel

from .console import BufferedKeyboard
from .lc3 import LC3, Opcode
from ._version import __version__

class LC3VMKernel(MetaKernel):
    implementation = 'LC3VM'
    implementation_version = __version__
    language = 'LC3 object image'
    language_version = '0.1'
    banner = "LC3 VM - run Little Computer 3 object images"
    language_info = {
        'name': 'lc3vm',
        'mimetype': 'text/plain',
        'file_extension': '.hex',
    }
    lc3_magics = ["%d", "%dis", "%dump", "%exe", "%load", "%mem", "%pc",
                  "%reg", "%regs", "%reset", "%save"]

    def __init__(self, *args, **kwargs):
        super(LC3VMKernel, self).__init__(*args, **kwargs)
        self.lc3 = LC3(self, keyboard=BufferedKeyboard(refill=self.raw_input))

    def get_usage(self):
        return """This is the LC3 VM Jupyter kernel.

Enter an object image as hex words; the first word is the origin:

    x3000
    x1261 ; ADD R1, R1, #1
    xF025 ; HALT

LC3 Interactive Magic Directives:

 %d                                 - toggle instruction tracing
 %dis [STARTHEX [STOPHEX]]          - dump memory as program
 %dump [STARTHEX [STOPHEX]]         - list memory in hex
 %exe                               - execute the loaded image
 %load FILENAME                     - load a big-endian .obj image
 %mem HEXLOCATION HEXVALUE          - set memory
 %pc HEXVALUE                       - set the start address
 %reg REG HEXVALUE                  - set register REG to HEXVALUE
 %regs                              - show registers
 %reset                             - reset LC3 to start state
 %save FILENAME                     - write the loaded image as .obj

HEX values begin with an 'x' and are composed of 4 0-F digits or letters.

To get additional help on these items, use '%help %item'.
"""

    def get_completions(self, info):
        token = info["help_obj"]
        matches = []
        for item in ([op.name for op in Opcode] +
                     list(self.lc3.trap_names.values()) +
                     self.lc3_magics):
            if item.startswith(token) and item not in matches:
                matches.append(item)
        return matches

    def get_kernel_help_on(self, info, level=0, none_on_fail=False):
        expr = info["code"]
        if expr == "%d":
            return """%d - Toggle tracing of every instruction executed
"""
        elif expr == "%dis":
            return """%dis - Disassemble memory
"""
        elif expr == "%dump":
            return """%dump - Dump memory
"""
        elif expr == "%exe":
            return """%exe - Execute the loaded image from the start address until HALT
"""
        elif expr == "%load":
            return """%load - Load an object image:
    %load hello.obj
"""
        elif expr == "%mem":
            return """%mem - Set a memory location
"""
        elif expr == "%pc":
            return """%pc - Set the start address (x3000 by default)
"""
        elif expr == "%reg":
            return """%reg - Set a register
"""
        elif expr == "%regs":
            return """%regs - See the registers
"""
        elif expr == "%reset":
            return """%reset - Reset the LC3
"""
        elif expr == "%save":
            return """%save - Save the loaded image as a big-endian object file
"""
        elif none_on_fail:
            return None
        else:
            return "No available help on '%s'" % expr

    def do_execute_file(self, filename):
        self.lc3.execute_file(filename)

    def do_execute_direct(self, code):
        try:
            self.lc3.execute(code.rstrip())
        except Exception as exc:
            self.Error(str(exc))
        except KeyboardInterrupt:
            self.Error("Keyboard Interrupt!")

    def repr(self, data):
        return repr(data)
