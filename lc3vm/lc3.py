"""
The LC-3 machine: memory with the memory-mapped keyboard, the register
file, and the instruction cycle that runs a loaded image until HALT.

Console system calls (GETC, OUT, PUTS, IN, PUTSP, HALT) are serviced
directly by the simulator rather than by an operating system image.
"""

from array import array
import enum
import sys

from .image import read_image, write_image, parse_hex_image

WORD_MASK = 0xFFFF
MEMORY_SIZE = 1 << 16
PC_START = 0x3000

MR_KBSR = 0xFE00 ## keyboard status
MR_KBDR = 0xFE02 ## keyboard data

# what a blocking read yields at end of input, like getchar()'s EOF
EOF_CHAR = 0xFFFF

FL_POS = 1 << 0
FL_ZRO = 1 << 1
FL_NEG = 1 << 2

TRAP_GETC = 0x20
TRAP_OUT = 0x21
TRAP_PUTS = 0x22
TRAP_IN = 0x23
TRAP_PUTSP = 0x24
TRAP_HALT = 0x25


class Opcode(enum.IntEnum):
    BR = 0b0000
    ADD = 0b0001
    LD = 0b0010
    ST = 0b0011
    JSR = 0b0100
    AND = 0b0101
    LDR = 0b0110
    STR = 0b0111
    RTI = 0b1000
    NOT = 0b1001
    LDI = 0b1010
    STI = 0b1011
    JMP = 0b1100
    RES = 0b1101
    LEA = 0b1110
    TRAP = 0b1111


def ascii_str(i):
    if i < 256:
        if i < 32 or i > 127: # integers
            return "(or %s)" % i
        else: # int, or ASCII
            return "(or %s, %s)" % (i, repr(chr(i)))
    else:
        return ""

class HEX(int):
    def __repr__(self):
        return lc_hex(self)

def lc_hex(h):
    """ Format the value in the form xFFFF """
    return 'x%04X' % lc_bin(h)

def lc_bin(v):
    """ Truncate any extra bytes """
    return v & WORD_MASK

def sext(binary, bits):
    """
    Sign-extend the low `bits` bits of binary to a 16-bit word: if the
    most significant bit of the field is set, every bit above it is set
    too.
    """
    binary &= (1 << bits) - 1
    if binary & (1 << (bits - 1)):
        return lc_bin((WORD_MASK << bits) | binary)
    else:
        return binary

def lc_int(v):
    if v & (1 << 15): # negative
        return -((~(v & WORD_MASK) + 1) & WORD_MASK)
    else:
        return v


class Memory(object):
    """
    65536 words of storage. Reading the keyboard status register polls
    the keyboard: when a key is waiting, KBSR gets its high bit set and
    the character lands in KBDR; otherwise KBSR is cleared.

    The keyboard is any object with ``key_available()`` and
    ``read_key()``; see lc3vm.console.
    """
    def __init__(self, keyboard=None):
        self.keyboard = keyboard
        self.cells = array('H', [0] * MEMORY_SIZE)

    def __len__(self):
        return MEMORY_SIZE

    def read(self, address):
        address = lc_bin(address)
        if address == MR_KBSR:
            self.poll_keyboard()
        return self.cells[address]

    def peek(self, address):
        """ Read without device side effects, for dumps """
        return self.cells[lc_bin(address)]

    def write(self, address, value):
        self.cells[lc_bin(address)] = lc_bin(value)

    def poll_keyboard(self):
        if self.keyboard is not None and self.keyboard.key_available():
            self.cells[MR_KBSR] = 1 << 15
            self.cells[MR_KBDR] = lc_bin(self.keyboard.read_key())
        else:
            self.cells[MR_KBSR] = 0

    def load(self, origin, words):
        """
        Place words consecutively from origin. Words that would run past
        the end of memory are dropped. Returns the number placed.
        """
        origin = lc_bin(origin)
        count = min(len(words), MEMORY_SIZE - origin)
        self.cells[origin:origin + count] = array(
            'H', [lc_bin(word) for word in words[:count]])
        return count

    def clear(self):
        self.cells = array('H', [0] * MEMORY_SIZE)


class RegisterFile(object):
    """ R0-R7, the program counter and the NZP condition register """
    def __init__(self):
        self.reset()

    def reset(self):
        self.general = [0] * 8
        self.pc = PC_START
        self.cond = FL_ZRO

    def __getitem__(self, index):
        return self.general[index & 0b111]

    def __setitem__(self, index, value):
        self.general[index & 0b111] = lc_bin(value)

    def get_pc(self):
        return self.pc

    def set_pc(self, value):
        self.pc = lc_bin(value)

    def get_cond(self):
        return self.cond

    def set_cond(self, flag):
        self.cond = flag

    def update_flags(self, index):
        value = self[index]
        if value == 0:
            self.cond = FL_ZRO
        elif value & (1 << 15):
            self.cond = FL_NEG
        else:
            self.cond = FL_POS

    def get_nzp(self):
        return (int(self.cond == FL_NEG),
                int(self.cond == FL_ZRO),
                int(self.cond == FL_POS))


class LC3(object):
    """
    The LC3 Computer. This object loads images into memory and executes
    them, servicing the console traps itself.
    """
    trap_names = {
        TRAP_GETC: "GETC",
        TRAP_OUT: "OUT",
        TRAP_PUTS: "PUTS",
        TRAP_IN: "IN",
        TRAP_PUTSP: "PUTSP",
        TRAP_HALT: "HALT",
    }

    def __init__(self, kernel=None, keyboard=None, output=None):
        self.kernel = kernel
        self.output = output
        self.memory = Memory(keyboard)
        self.registers = RegisterFile()
        # One handler per member of the closed Opcode set:
        self.apply = dict((op, getattr(self, op.name)) for op in Opcode)
        self.format = dict((op, getattr(self, op.name + "_format"))
                           for op in Opcode)
        self.traps = {
            TRAP_GETC: self.GETC,
            TRAP_OUT: self.OUT,
            TRAP_PUTS: self.PUTS,
            TRAP_IN: self.IN,
            TRAP_PUTSP: self.PUTSP,
            TRAP_HALT: self.HALT,
        }
        self.initialize()

    @property
    def keyboard(self):
        return self.memory.keyboard

    def initialize(self):
        self.filename = ""
        self.debug = False
        self.warn = True
        self.pc_start = PC_START
        self.prompt = "Enter a character: "
        self.halt_message = "HALT\n"
        self.orig = HEX(PC_START)
        self.extent = 0
        self.cont = False
        self.instruction_count = 0
        self.memory.clear()
        self.reset_registers()

    def reset_registers(self):
        self.registers.reset()
        self.set_pc(self.pc_start)

    #### Register and memory access; traced when debug is on

    def set_nzp(self, flag):
        self.registers.set_cond(flag)
        if self.debug:
            self.Print("    NZP <=", self.get_nzp())

    def get_nzp(self):
        return self.registers.get_nzp()

    def update_flags(self, position):
        self.registers.update_flags(position)
        if self.debug:
            self.Print("    NZP <=", self.get_nzp())

    def get_pc(self):
        return self.registers.get_pc()

    def set_pc(self, value):
        self.registers.set_pc(value)
        if self.debug:
            self.Print("    PC <= %s" % lc_hex(value))

    def increment_pc(self, value=1):
        self.set_pc(self.get_pc() + value)

    def get_register(self, position):
        return self.registers[position]

    def set_register(self, position, value):
        self.registers[position] = value
        if self.debug:
            self.Print("    R%d <= %s" % (position, lc_hex(value)))

    def get_memory(self, location):
        return self.memory.read(location)

    def set_memory(self, location, value):
        self.memory.write(location, value)
        if self.debug:
            self.Print("    memory[%s] <= %s" % (lc_hex(location), lc_hex(value)))

    #### Host console

    def stream(self):
        return self.output if self.output is not None else sys.stdout

    def write_char(self, value):
        self.stream().write(chr(value & 0xFF))

    def write_string(self, string):
        self.stream().write(string)

    def flush(self):
        self.stream().flush()

    def read_char(self):
        if self.keyboard is None:
            return EOF_CHAR
        return lc_bin(self.keyboard.read_key())

    def Print(self, *args, end="\n"):
        print(*args, end=end, file=self.stream())

    def Error(self, string):
        if self.kernel:
            self.kernel.Error(string)
        else:
            sys.stderr.write(string)

    #### Execution

    def run(self):
        """
        Run from the start address with the condition register at Z,
        until a HALT trap stops the machine.
        """
        self.instruction_count = 0
        self.set_nzp(FL_ZRO)
        self.set_pc(self.pc_start)
        self.cont = True
        if self.debug:
            self.Print("Tracing! PC* is incremented Program Counter")
            self.Print("(Instr Count) INSTR (PC*: xHEX)")
            self.Print("----------------------------------------------------")
        while self.cont:
            self.step()

    def step(self):
        pc = self.get_pc()
        instruction = self.get_memory(pc)
        instr = Opcode(instruction >> 12)
        self.instruction_count += 1
        self.increment_pc()
        if self.debug:
            self.Print("(%s) %s (%s*: %s)" % (
                self.instruction_count,
                self.format[instr](instruction, pc),
                lc_hex(self.get_pc()),
                lc_hex(instruction)))
        self.apply[instr](instruction)

    def dump_registers(self):
        self.Print()
        self.Print("=" * 60)
        self.Print("Registers:")
        self.Print("=" * 60)
        self.Print("PC:", lc_hex(self.get_pc()))
        for r, v in zip("NZP", self.get_nzp()):
            self.Print("%s: %s" % (r, v), end=" ")
        self.Print()
        for key in range(8):
            self.Print("R%d: %s" % (key, lc_hex(self.get_register(key))), end=" ")
            if key % 4 == 3:
                self.Print()

    def dump(self, orig_start=None, orig_stop=None, raw=False, header=True):
        if orig_start is None:
            start = self.orig
        else:
            start = orig_start
        if orig_stop is None:
            stop = start + self.extent
        else:
            stop = orig_stop + 1
        if stop <= start:
            stop = start + 10
        if stop - start > 100:
            stop = start + 100
        stop = min(stop, MEMORY_SIZE)
        if header:
            self.Print("=" * 60)
            self.Print("Memory dump:" if raw else "Memory disassembled:")
            self.Print("=" * 60)
        for location in range(start, stop):
            instruction = self.memory.peek(location)
            if raw:
                self.Print("%s: %s" % (lc_hex(location), lc_hex(instruction)))
            else:
                instr = Opcode(instruction >> 12)
                self.Print("%s: %s  %s" % (
                    lc_hex(location), lc_hex(instruction),
                    self.format[instr](instruction, location)))

    #### Instructions

    def STR(self, instruction):
        src = (instruction & 0b0000111000000000) >> 9
        base = (instruction & 0b0000000111000000) >> 6
        offset6 = instruction & 0b0000000000111111
        self.set_memory(self.get_register(base) + sext(offset6, 6),
                        self.get_register(src))

    def STR_format(self, instruction, location):
        src = (instruction & 0b0000111000000000) >> 9
        base = (instruction & 0b0000000111000000) >> 6
        offset6 = instruction & 0b0000000000111111
        return "STR R%d, R%d, #%s" % (src, base, lc_int(sext(offset6, 6)))

    def RTI(self, instruction):
        # no privilege modes: executed as a trap
        self.TRAP(instruction)

    def RTI_format(self, instruction, location):
        return "RTI"

    def RES(self, instruction):
        self.TRAP(instruction)

    def RES_format(self, instruction, location):
        return ";; RESERVED %s %s" % (lc_hex((instruction >> 12) & 0xF),
                                      lc_hex(instruction & 0b0000111111111111))

    def NOT(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        src = (instruction & 0b0000000111000000) >> 6
        self.set_register(dst, ~self.get_register(src))
        self.update_flags(dst)

    def NOT_format(self, instruction, location):
        dst = (instruction & 0b0000111000000000) >> 9
        src = (instruction & 0b0000000111000000) >> 6
        return "NOT R%d, R%d" % (dst, src)

    def LDI(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        pc_offset9 = instruction & 0b0000000111111111
        location = self.get_pc() + sext(pc_offset9, 9)
        memory1 = self.get_memory(location)
        memory2 = self.get_memory(memory1)
        if self.debug:
            self.Print("  Reading memory[x%04x] (x%04x) =>" % (lc_bin(location), memory1))
            self.Print("  Reading memory[x%04x] (x%04x) =>" % (memory1, memory2))
        self.set_register(dst, memory2)
        self.update_flags(dst)

    def LDI_format(self, instruction, location):
        dst = (instruction & 0b0000111000000000) >> 9
        pc_offset9 = instruction & 0b0000000111111111
        return "LDI R%d, %s" % (dst, lc_hex(location + 1 + sext(pc_offset9, 9)))

    def STI(self, instruction):
        src = (instruction & 0b0000111000000000) >> 9
        pc_offset9 = instruction & 0b0000000111111111
        memory = self.get_memory(self.get_pc() + sext(pc_offset9, 9))
        self.set_memory(memory, self.get_register(src))

    def STI_format(self, instruction, location):
        src = (instruction & 0b0000111000000000) >> 9
        pc_offset9 = instruction & 0b0000000111111111
        return "STI R%d, %s" % (src, lc_hex(location + 1 + sext(pc_offset9, 9)))

    def LEA(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        pc_offset9 = instruction & 0b0000000111111111
        self.set_register(dst, self.get_pc() + sext(pc_offset9, 9))
        self.update_flags(dst)

    def LEA_format(self, instruction, location):
        dst = (instruction & 0b0000111000000000) >> 9
        pc_offset9 = instruction & 0b0000000111111111
        return "LEA R%d, %s" % (dst, lc_hex(location + 1 + sext(pc_offset9, 9)))

    def TRAP(self, instruction):
        vector = instruction & 0b0000000011111111
        self.set_register(7, self.get_pc())
        if vector in self.traps:
            self.traps[vector]()
        elif self.warn:
            self.Error("Warning: ignoring invalid TRAP vector %s at %s\n" % (
                lc_hex(vector), lc_hex(self.get_pc() - 1)))

    def TRAP_format(self, instruction, location):
        vector = instruction & 0b0000000011111111
        if vector in self.trap_names:
            return self.trap_names[vector]
        else:
            return ";; Invalid TRAP vector: %s" % lc_hex(vector)

    def BR(self, instruction):
        cond = (instruction & 0b0000111000000000) >> 9
        pc_offset9 = instruction & 0b0000000111111111
        if cond & self.registers.get_cond():
            self.set_pc(self.get_pc() + sext(pc_offset9, 9))
            if self.debug:
                self.Print("    True - branching to", lc_hex(self.get_pc()))
        else:
            if self.debug:
                self.Print("    False - continuing...")

    def BR_format(self, instruction, location):
        n = instruction & 0b0000100000000000
        z = instruction & 0b0000010000000000
        p = instruction & 0b0000001000000000
        pc_offset9 = instruction & 0b0000000111111111
        instr = "BR"
        if n:
            instr += "n"
        if z:
            instr += "z"
        if p:
            instr += "p"
        target = lc_hex(location + 1 + sext(pc_offset9, 9))
        if not (n or z or p):
            return "NOP - (no BR to %s) %s" % (target, ascii_str(pc_offset9))
        else:
            return "%s %s" % (instr, target)

    def LD(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        pc_offset9 = instruction & 0b0000000111111111
        location = self.get_pc() + sext(pc_offset9, 9)
        memory = self.get_memory(location)
        if self.debug:
            self.Print("  Reading memory[x%04x] (x%04x) =>" % (lc_bin(location), memory))
        self.set_register(dst, memory)
        self.update_flags(dst)

    def LD_format(self, instruction, location):
        dst = (instruction & 0b0000111000000000) >> 9
        pc_offset9 = instruction & 0b0000000111111111
        return "LD R%d, %s" % (dst, lc_hex(location + 1 + sext(pc_offset9, 9)))

    def LDR(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        base = (instruction & 0b0000000111000000) >> 6
        offset6 = instruction & 0b0000000000111111
        location = self.get_register(base) + sext(offset6, 6)
        memory = self.get_memory(location)
        if self.debug:
            self.Print("  Reading memory[x%04x] (x%04x) =>" % (lc_bin(location), memory))
        self.set_register(dst, memory)
        self.update_flags(dst)

    def LDR_format(self, instruction, location):
        dst = (instruction & 0b0000111000000000) >> 9
        base = (instruction & 0b0000000111000000) >> 6
        offset6 = instruction & 0b0000000000111111
        return "LDR R%d, R%d, #%s" % (dst, base, lc_int(sext(offset6, 6)))

    def ST(self, instruction):
        src = (instruction & 0b0000111000000000) >> 9
        pc_offset9 = instruction & 0b0000000111111111
        self.set_memory(self.get_pc() + sext(pc_offset9, 9), self.get_register(src))

    def ST_format(self, instruction, location):
        src = (instruction & 0b0000111000000000) >> 9
        pc_offset9 = instruction & 0b0000000111111111
        return "ST R%d, %s" % (src, lc_hex(location + 1 + sext(pc_offset9, 9)))

    def JMP(self, instruction):
        base = (instruction & 0b0000000111000000) >> 6
        self.set_pc(self.get_register(base))

    def JMP_format(self, instruction, location):
        base = (instruction & 0b0000000111000000) >> 6
        if base == 7:
            return "RET"
        else:
            return "JMP R%d" % base

    def JSR(self, instruction):
        # the link is written before the base register is read
        self.set_register(7, self.get_pc())
        if (instruction & 0b0000100000000000): # JSR
            pc_offset11 = instruction & 0b0000011111111111
            self.set_pc(self.get_pc() + sext(pc_offset11, 11))
        else:                                  # JSRR
            base = (instruction & 0b0000000111000000) >> 6
            self.set_pc(self.get_register(base))

    def JSR_format(self, instruction, location):
        if (instruction & 0b0000100000000000): # JSR
            pc_offset11 = instruction & 0b0000011111111111
            return "JSR %s" % lc_hex(location + 1 + sext(pc_offset11, 11))
        else:                                  # JSRR
            base = (instruction & 0b0000000111000000) >> 6
            return "JSRR R%d" % base

    def ADD(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        sr1 = (instruction & 0b0000000111000000) >> 6
        if (instruction & 0b0000000000100000) == 0:
            sr2 = instruction & 0b0000000000000111
            self.set_register(dst, self.get_register(sr1) + self.get_register(sr2))
        else:
            imm5 = instruction & 0b0000000000011111
            self.set_register(dst, self.get_register(sr1) + sext(imm5, 5))
        self.update_flags(dst)

    def ADD_format(self, instruction, location):
        dst = (instruction & 0b0000111000000000) >> 9
        sr1 = (instruction & 0b0000000111000000) >> 6
        if (instruction & 0b0000000000100000):
            imm5 = instruction & 0b0000000000011111
            return "ADD R%d, R%d, #%s" % (dst, sr1, lc_int(sext(imm5, 5)))
        else:
            sr2 = instruction & 0b0000000000000111
            return "ADD R%d, R%d, R%d" % (dst, sr1, sr2)

    def AND(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        sr1 = (instruction & 0b0000000111000000) >> 6
        if (instruction & 0b0000000000100000) == 0:
            sr2 = instruction & 0b0000000000000111
            self.set_register(dst, self.get_register(sr1) & self.get_register(sr2))
        else:
            imm5 = instruction & 0b0000000000011111
            self.set_register(dst, self.get_register(sr1) & sext(imm5, 5))
        self.update_flags(dst)

    def AND_format(self, instruction, location):
        dst = (instruction & 0b0000111000000000) >> 9
        sr1 = (instruction & 0b0000000111000000) >> 6
        if (instruction & 0b0000000000100000):
            imm5 = instruction & 0b0000000000011111
            return "AND R%d, R%d, #%s" % (dst, sr1, lc_int(sext(imm5, 5)))
        else:
            sr2 = instruction & 0b0000000000000111
            return "AND R%d, R%d, R%d" % (dst, sr1, sr2)

    #### Trap routines

    def GETC(self):
        ### No prompt, no echo:
        self.set_register(0, self.read_char())
        self.update_flags(0)

    def OUT(self):
        self.write_char(self.get_register(0))
        self.flush()

    def PUTS(self):
        location = self.get_register(0)
        memory = self.get_memory(location)
        while memory != 0:
            self.write_char(memory)
            location += 1
            memory = self.get_memory(location)
        self.flush()

    def IN(self):
        self.write_string(self.prompt)
        self.flush()
        char = self.read_char()
        self.write_char(char)
        self.flush()
        self.set_register(0, char)
        self.update_flags(0)

    def PUTSP(self):
        ## two characters per word, low byte first
        location = self.get_register(0)
        memory = self.get_memory(location)
        while memory & 0b0000000011111111:
            self.write_char(memory)
            if memory & 0b1111111100000000:
                self.write_char(memory >> 8)
            location += 1
            memory = self.get_memory(location)
        self.flush()

    def HALT(self):
        self.write_string(self.halt_message)
        self.flush()
        self.cont = False

    #### Images

    def load_words(self, origin, words):
        count = self.memory.load(origin, words)
        self.orig = HEX(origin)
        self.extent = count
        return count

    def load_image(self, filename):
        origin, count = read_image(filename, self.memory)
        self.filename = filename
        self.orig = HEX(origin)
        self.extent = count
        return origin, count

    def save_image(self, filename):
        words = [self.memory.peek(location)
                 for location in range(self.orig, self.orig + self.extent)]
        with open(filename, 'wb') as fp:
            write_image(fp, self.orig, words)

    def report(self):
        self.Print("=" * 60)
        self.Print("Computation completed")
        self.Print("=" * 60)
        self.Print("Instructions:", self.instruction_count)
        self.dump_registers()

    def execute_file(self, filename):
        self.load_image(filename)
        self.run()
        self.report()

    def execute(self, text):
        words = [word.strip() for word in text.split()]
        if not words:
            return True
        if words[0].startswith("%"):
            if words[0] == "%dump":
                self.dump(*[int("0" + word, 16) for word in words[1:]], raw=True)
                return True
            elif words[0] == "%dis":
                self.dump(*[int("0" + word, 16) for word in words[1:]])
                return True
            elif words[0] == "%regs":
                self.dump_registers()
                return True
            elif words[0] == "%d":
                self.debug = not self.debug
                self.Print("Debug is now %s" % ["off", "on"][int(self.debug)])
                return True
            elif words[0] == "%pc":
                self.pc_start = int("0" + words[1], 16)
                self.set_pc(self.pc_start)
                self.dump_registers()
                return True
            elif words[0] == "%mem":
                location = int("0" + words[1], 16)
                self.set_memory(location, int("0" + words[2], 16))
                self.dump(location, location, raw=True)
                return True
            elif words[0] == "%reg":
                position = int(words[1].lstrip("Rr"))
                if not 0 <= position <= 7:
                    raise ValueError('Invalid register: "%s"; use R0-R7' % words[1])
                self.set_register(position, int("0" + words[2], 16))
                self.dump_registers()
                return True
            elif words[0] == "%reset":
                self.initialize()
                if self.keyboard is not None and hasattr(self.keyboard, "clear"):
                    self.keyboard.clear()
                self.dump_registers()
                return True
            elif words[0] == "%load":
                origin, count = self.load_image(" ".join(words[1:]))
                self.Print("Loaded %s words at %s" % (count, lc_hex(origin)))
                return True
            elif words[0] == "%save":
                self.save_image(" ".join(words[1:]))
                self.Print("Saved %s words from %s" % (self.extent, lc_hex(self.orig)))
                return True
            elif words[0] == "%exe":
                if self.keyboard is not None and hasattr(self.keyboard, "clear"):
                    self.keyboard.clear()
                self.run()
                self.report()
                return True
            else:
                self.Error("Invalid Interactive Magic Directive\nHint: %help")
                return False
        else:
            ### Else, must be a hex image:
            origin, image = parse_hex_image(text)
            count = self.load_words(origin, image)
            self.Print("Loaded %s words at %s; use %%dis or %%dump to examine, %%exe to run." % (
                count, lc_hex(origin)))
            return True
