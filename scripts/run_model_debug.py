import json
import logging
import sys

from wdnopt.core.log import set_log_level
from wdnopt.core.postprocess.summary import export_bounds_csv
from wdnopt.core.solver.build import instantiate_model

logging.basicConfig(format="%(levelname)s %(name)s: %(message)s")
set_log_level("INFO")

# usage: python scripts/run_model_debug.py network.json [nc|oa|crd] [out_folder]
path = sys.argv[1]
form = sys.argv[2] if len(sys.argv) > 2 else "nc"
out = sys.argv[3] if len(sys.argv) > 3 else "bounds_out"

# 1) Load the normalized network mapping
with open(path, "r", encoding="utf-8") as f:
    data = json.load(f)

multinetwork = bool(data.get("multinetwork", False))

# 2) Build
wm = instantiate_model(data, form, multinetwork=multinetwork)

print("Build OK:", wm.model.name, "formulation:", wm.config.formulation.value)
for index, counts in wm.constraint_counts().items():
    print(f"\n---- index {index} ----")
    for cat, n in sorted(counts.items()):
        print(f"{cat:28s} {n}")

# 3) Bounds per index
for ctx in wm.contexts:
    prefix = f"{ctx.index}_" if wm.multinetwork else ""
    paths = export_bounds_csv(ctx.bounds, out, ctx.ref, prefix=prefix)
    print("bounds:", paths)
