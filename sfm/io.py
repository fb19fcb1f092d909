#!/usr/bin/env python3
"""
io.py

FUSECUT Scene Store
-------------------
- JSON scene files (.sfm / .json): views, intrinsics, poses, structure
- Completeness flags select what is read and written
- Dense point export (.ply) through Open3D: positions + colors only
- Deterministic output: entries sorted by id, fixed key order
"""

import json
from enum import Flag
from pathlib import Path

import numpy as np
import open3d as o3d

from errors import SceneIOError
from sfm.data import (
    UNDEFINED_INDEX,
    UNKNOWN_DESCRIBER,
    UNKNOWN_SCALE,
    WHITE,
    Intrinsic,
    Landmark,
    Observation,
    Pose,
    Scene,
    View,
)

FORMAT_VERSION = ["1", "2", "0"]
JSON_EXTS = {".sfm", ".json"}


class ESfMData(Flag):
    VIEWS = 1
    EXTRINSICS = 2
    INTRINSICS = 4
    STRUCTURE = 8
    OBSERVATIONS = 16
    OBSERVATIONS_WITH_FEATURES = 32

    ALL_DENSE = VIEWS | EXTRINSICS | INTRINSICS | STRUCTURE | OBSERVATIONS
    ALL = ALL_DENSE | OBSERVATIONS_WITH_FEATURES


# --------------------------------------------------
# Serialization helpers
# --------------------------------------------------
def _floats(values):
    return [float(v) for v in np.asarray(values).ravel()]


def _view_to_json(view: View) -> dict:
    return {
        "viewId": str(view.view_id),
        "poseId": str(view.pose_id),
        "intrinsicId": str(view.intrinsic_id),
        "path": view.image_path,
        "width": str(view.width),
        "height": str(view.height),
        "metadata": {k: str(v) for k, v in sorted(view.metadata.items())},
    }


def _view_from_json(data: dict) -> View:
    return View(
        view_id=int(data["viewId"]),
        pose_id=int(data.get("poseId", UNDEFINED_INDEX)),
        intrinsic_id=int(data.get("intrinsicId", UNDEFINED_INDEX)),
        image_path=data.get("path", ""),
        width=int(data.get("width", 0)),
        height=int(data.get("height", 0)),
        metadata=dict(data.get("metadata", {})),
    )


def _intrinsic_to_json(intrinsic: Intrinsic) -> dict:
    return {
        "intrinsicId": str(intrinsic.intrinsic_id),
        "width": str(intrinsic.width),
        "height": str(intrinsic.height),
        "type": intrinsic.model,
        "pxFocalLength": float(intrinsic.focal_length),
        "principalPoint": _floats(intrinsic.principal_point),
        "distortionParams": _floats(intrinsic.distortion),
    }


def _intrinsic_from_json(data: dict) -> Intrinsic:
    return Intrinsic(
        intrinsic_id=int(data["intrinsicId"]),
        width=int(data["width"]),
        height=int(data["height"]),
        focal_length=float(data["pxFocalLength"]),
        principal_point=tuple(float(v) for v in data["principalPoint"]),
        model=data.get("type", "pinhole"),
        distortion=[float(v) for v in data.get("distortionParams", [])],
    )


def _pose_to_json(pose_id: int, pose: Pose) -> dict:
    return {
        "poseId": str(pose_id),
        "pose": {
            "transform": {
                "rotation": _floats(pose.rotation),
                "center": _floats(pose.center),
            },
            "locked": "1" if pose.locked else "0",
        },
    }


def _pose_from_json(data: dict):
    transform = data["pose"]["transform"]
    pose = Pose(
        rotation=np.array(transform["rotation"], dtype=np.float64).reshape(3, 3),
        center=np.array(transform["center"], dtype=np.float64),
        locked=str(data["pose"].get("locked", "0")) == "1",
    )
    return int(data["poseId"]), pose


def _landmark_to_json(landmark_id: int, landmark: Landmark, flags: ESfMData) -> dict:
    out = {
        "landmarkId": str(landmark_id),
        "descType": landmark.describer_type,
        "color": [int(c) for c in landmark.rgb],
        "X": _floats(landmark.X),
    }

    if flags & ESfMData.OBSERVATIONS:
        observations = []
        for view_id in sorted(landmark.observations):
            obs = landmark.observations[view_id]
            entry = {"observationId": str(view_id)}
            if flags & ESfMData.OBSERVATIONS_WITH_FEATURES:
                entry["featureId"] = str(obs.feature_id)
            entry["x"] = _floats(obs.x)
            entry["scale"] = float(obs.scale)
            observations.append(entry)
        out["observations"] = observations

    return out


def _landmark_from_json(data: dict, flags: ESfMData):
    landmark = Landmark(
        X=np.array(data["X"], dtype=np.float64),
        describer_type=data.get("descType", UNKNOWN_DESCRIBER),
        rgb=tuple(int(c) for c in data.get("color", WHITE)),
    )

    if flags & ESfMData.OBSERVATIONS:
        for entry in data.get("observations", []):
            landmark.observations[int(entry["observationId"])] = Observation(
                x=np.array(entry["x"], dtype=np.float64),
                feature_id=int(entry.get("featureId", UNDEFINED_INDEX)),
                scale=float(entry.get("scale", UNKNOWN_SCALE)),
            )

    return int(data["landmarkId"]), landmark


# --------------------------------------------------
# Public API
# --------------------------------------------------
def load_scene(path: Path, flags: ESfMData = ESfMData.ALL) -> Scene:
    path = Path(path)

    if path.suffix.lower() not in JSON_EXTS:
        raise SceneIOError(f"Unsupported scene format for reading: {path}", path)

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise SceneIOError(f"The input SfMData file '{path}' cannot be read: {exc}", path) from exc

    scene = Scene()

    try:
        if flags & ESfMData.VIEWS:
            for entry in data.get("views", []):
                view = _view_from_json(entry)
                scene.views[view.view_id] = view

        if flags & ESfMData.INTRINSICS:
            for entry in data.get("intrinsics", []):
                intrinsic = _intrinsic_from_json(entry)
                scene.intrinsics[intrinsic.intrinsic_id] = intrinsic

        if flags & ESfMData.EXTRINSICS:
            for entry in data.get("poses", []):
                pose_id, pose = _pose_from_json(entry)
                scene.poses[pose_id] = pose

        if flags & ESfMData.STRUCTURE:
            for entry in data.get("structure", []):
                landmark_id, landmark = _landmark_from_json(entry, flags)
                scene.landmarks[landmark_id] = landmark

        if ESfMData.ALL_DENSE in flags:
            scene.validate()
    except (KeyError, TypeError, ValueError) as exc:
        raise SceneIOError(f"The input SfMData file '{path}' is malformed: {exc}", path) from exc

    return scene


def save_scene(scene: Scene, path: Path, flags: ESfMData = ESfMData.ALL):
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix == ".ply":
        _save_point_cloud(scene, path)
        return

    if suffix not in JSON_EXTS:
        raise SceneIOError(f"Unsupported scene format for writing: {path}", path)

    data = {"version": FORMAT_VERSION}

    if flags & ESfMData.VIEWS:
        data["views"] = [_view_to_json(scene.views[k]) for k in sorted(scene.views)]

    if flags & ESfMData.INTRINSICS:
        data["intrinsics"] = [_intrinsic_to_json(scene.intrinsics[k]) for k in sorted(scene.intrinsics)]

    if flags & ESfMData.EXTRINSICS:
        data["poses"] = [_pose_to_json(k, scene.poses[k]) for k in sorted(scene.poses)]

    if flags & ESfMData.STRUCTURE:
        data["structure"] = [
            _landmark_to_json(k, scene.landmarks[k], flags) for k in sorted(scene.landmarks)
        ]

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=4)
    except OSError as exc:
        raise SceneIOError(f"Failed to write scene: {path}: {exc}", path) from exc


def _save_point_cloud(scene: Scene, path: Path):
    ids = sorted(scene.landmarks)
    pcd = o3d.geometry.PointCloud()

    if ids:
        points = np.array([scene.landmarks[i].X for i in ids], dtype=np.float64)
        colors = np.array([scene.landmarks[i].rgb for i in ids], dtype=np.float64) / 255.0
        pcd.points = o3d.utility.Vector3dVector(points)
        pcd.colors = o3d.utility.Vector3dVector(colors)

    if not o3d.io.write_point_cloud(str(path), pcd, write_ascii=False):
        raise SceneIOError(f"Failed to write point cloud: {path}", path)
