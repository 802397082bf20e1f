import logging

from flask import Flask, request, jsonify
from flask_cors import CORS
import sqcompiler

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config.from_mapping(
    TRACE_TOKENS=False,
    MAX_SOURCE_LENGTH=4096,
)
app.config.from_prefixed_env("SQC")
CORS(app)  # allow cross-origin requests

def configure_logging(config):
    if not config["TRACE_TOKENS"]:
        return
    trace = logging.getLogger(sqcompiler.__name__)
    trace.setLevel(logging.DEBUG)
    # flask run installs no handler of its own for this logger
    if not trace.handlers:
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
        trace.addHandler(h)

configure_logging(app.config)

def ast_to_dict(node):
    """
    Serialize AST to dict recursively
    """
    if node is None:
        return None
    d = {"type": type(node).__name__}
    if isinstance(node, sqcompiler.Assign):
        d["name"] = node.name
        d["value"] = ast_to_dict(node.value)
    elif isinstance(node, sqcompiler.BinaryOp):
        d["op"] = node.op
        d["left"] = ast_to_dict(node.left)
        d["right"] = ast_to_dict(node.right)
    elif isinstance(node, sqcompiler.Square):
        d["operand"] = ast_to_dict(node.operand)
    elif isinstance(node, sqcompiler.Literal):
        d["value"] = node.value
    elif isinstance(node, sqcompiler.Variable):
        d["name"] = node.name
    return d

def tokens_to_list(tokens):
    return [
        {"type": t.type, "value": t.value, "lineno": t.lineno}
        for t in tokens
        if t.type != 'END'
    ]

def read_code(data):
    if not isinstance(data, dict):
        return None, "missing 'code'"
    code = data.get("code")
    if not isinstance(code, str) or not code.strip():
        return None, "missing 'code'"
    if len(code) > app.config["MAX_SOURCE_LENGTH"]:
        return None, "source too long"
    return code, None

def read_request():
    """Pull `code` and an optional `variables` seed out of the JSON body."""
    data = request.get_json(silent=True) or {}
    code, problem = read_code(data)
    if problem:
        return None, None, problem
    variables = data.get("variables") or {}
    if not isinstance(variables, dict) or not all(
        isinstance(k, str) and isinstance(v, int) and not isinstance(v, bool)
        for k, v in variables.items()
    ):
        return None, None, "'variables' must map names to integers"
    try:
        store = sqcompiler.VariableStore(variables)
    except sqcompiler.IntegerOverflowError as e:
        return None, None, str(e)
    return code, store, None

@app.route("/compile", methods=["POST"])
def compile_code():
    code, store, problem = read_request()
    if problem:
        return jsonify({"errors": [problem]}), 400

    result = sqcompiler.compile_source(code, store)
    response = {
        "tokens": tokens_to_list(result['tokens']),
        "ast": ast_to_dict(result['ast']) if result['ast'] else {},
        "assembly": result['asm'],
        "result": result['result'],
        "errors": result['errors'],
        "variables": result['variables'],
    }
    return jsonify(response)

@app.route("/tokens", methods=["POST"])
def tokens():
    code, problem = read_code(request.get_json(silent=True) or {})
    if problem:
        return jsonify({"tokens": [], "errors": [problem]}), 400
    try:
        toks = sqcompiler.tokenize(code)
    except sqcompiler.LexError as e:
        return jsonify({"tokens": [], "errors": [str(e)]})
    return jsonify({"tokens": tokens_to_list(toks), "errors": []})

@app.route("/evaluate", methods=["POST"])
def evaluate():
    code, store, problem = read_request()
    if problem:
        return jsonify({"errors": [problem]}), 400

    try:
        ast = sqcompiler.parse(code)
        value = sqcompiler.evaluate(ast, store)
    except sqcompiler.CompileError as e:
        logger.info("evaluate failed: %s", e)
        return jsonify({
            "result": None,
            "errors": [str(e)],
            "kind": getattr(e, "kind", e.phase),
            "variables": store.snapshot(),
        })
    return jsonify({
        "result": value,
        "errors": [],
        "variables": store.snapshot(),
    })

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    app.run(debug=True)
