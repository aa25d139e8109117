# ampar/codegen/__init__.py
from .ir import build_ir, dump_ir, load_ir, load_ir_file, write_ir_file
