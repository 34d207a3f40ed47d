# floodpoints/pipeline.py
"""
Pre/post Sentinel-1 change detection -> stratified flood / non-flood points.

build_plan() only describes the work: it returns engine handles for every
stage and evaluates nothing apart from the per-window image counts, which
guard against empty composites. Pixels are computed (locally or on Earth
Engine) when one of the SamplingPlan methods that needs a concrete answer
is called: size(), histogram(), collect(), submit_export(),
save_class_raster().
"""
from __future__ import annotations

from dataclasses import dataclass

import config
from floodpoints.errors import InsufficientDataError
from floodpoints.params import RunParams

# map styles
CHANGE_VIS = {"min": -5, "max": 5, "palette": ["blue", "white", "red"]}
FLOOD_MASK_VIS = {"palette": ["cyan"]}
POINT_COLORS = {1: "blue", 0: "red"}


@dataclass(frozen=True)
class SamplingPlan:
    engine: object
    params: RunParams
    aoi: object
    pre: object
    post: object
    change: object
    classes: object
    samples: object
    image_counts: dict

    def size(self) -> int:
        return self.engine.size(self.samples)

    def histogram(self) -> dict:
        return self.engine.histogram(self.samples)

    def collect(self) -> list:
        return self.engine.collect(self.samples)

    def flood_mask(self):
        return self.engine.flood_mask(self.classes)

    def submit_export(self, columns=None):
        """Register the CSV export and return its task handle without waiting on it."""
        return self.engine.submit_export(
            self.samples,
            list(columns or config.EXPORT_COLUMNS),
            folder=self.params.folder,
            file_name=self.params.file_name,
            description=self.params.file_name,
        )

    def save_class_raster(self, path):
        return self.engine.save_class_raster(
            self.classes, path, aoi=self.aoi, scale=self.params.scale, crs=self.params.crs
        )

    def under_sampled(self, hist: dict) -> dict:
        """Classes that came back with fewer points than requested, as {class: count}."""
        want = self.params.points_per_class
        return {str(v): hist.get(str(v), 0) for v in self.params.class_values if hist.get(str(v), 0) < want}


def build_plan(params: RunParams, aoi, engine) -> SamplingPlan:
    params.validate()
    s1 = engine.s1_collection(aoi, params)

    counts = {}
    for name, window in (("pre", params.pre), ("post", params.post)):
        n = engine.image_count(s1, window)
        counts[name] = n
        if n == 0:
            raise InsufficientDataError(
                f"No Sentinel-1 images over the AOI in the {name} window {window} "
                f"({params.instrument_mode}, {params.orbit_pass}, {params.polarization})"
            )

    pre = engine.composite(s1, params.pre, aoi, params, "pre")
    post = engine.composite(s1, params.post, aoi, params, "post")
    change = engine.difference(pre, post)
    classes = engine.classify(change, params.threshold, aoi)
    samples = engine.stratified_sample(classes, aoi, params)

    return SamplingPlan(
        engine=engine,
        params=params,
        aoi=aoi,
        pre=pre,
        post=post,
        change=change,
        classes=classes,
        samples=samples,
        image_counts=counts,
    )


def run(params: RunParams, aoi, engine, export=True):
    """Build the plan, report sample counts and submit the export. Returns (plan, task)."""
    if params.windows_overlap():
        print(f"[WARN] pre window {params.pre} overlaps post window {params.post}; "
              "the comparison may not be meaningful.")

    plan = build_plan(params, aoi, engine)
    print(f"[INFO] S1 images: pre={plan.image_counts['pre']}  post={plan.image_counts['post']}")

    print("[INFO] Running stratified sampling...")
    print(f"[INFO] Raw sample count: {plan.size()}")
    hist = plan.histogram()
    print(f"[INFO] Sample count by class: {hist}")

    short = plan.under_sampled(hist)
    if short:
        for cls, n in short.items():
            print(f"[WARN] class {cls}: {n} of {params.points_per_class} requested points "
                  "(not enough eligible pixels).")

    task = None
    if export:
        task = plan.submit_export()
        print(f"[INFO] Export task submitted: id={task.task_id}  -> {task.destination}")
        print("[INFO] The task runs asynchronously; check its status with the task id.")
    print("NOTE: If flood area is very small, fewer flood points may be generated.")
    return plan, task
