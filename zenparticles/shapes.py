"""
Procedural target clouds, one sampler per ShapeType.

Each sampler returns a (count, 3) array; ``generate`` flattens it into the
float32 ``x0, y0, z0, x1, ...`` layout the particle engine works on.
"""
from typing import Callable, Dict, Optional

import numpy as np

from .types import ShapeType

Sampler = Callable[[int, np.random.Generator], np.ndarray]


def _unit_directions(count: int, rng: np.random.Generator) -> np.ndarray:
    theta = rng.uniform(0.0, 2.0 * np.pi, count)
    phi = np.arccos(rng.uniform(-1.0, 1.0, count))
    return np.column_stack((
        np.sin(phi) * np.cos(theta),
        np.sin(phi) * np.sin(theta),
        np.cos(phi),
    ))


def _ball(count: int, radius: float, rng: np.random.Generator) -> np.ndarray:
    """Uniform points inside a ball."""
    r = radius * np.cbrt(rng.random(count))
    return _unit_directions(count, rng) * r[:, None]


def _sphere(count, rng):
    return _ball(count, 2.5, rng)


def _heart(count, rng):
    t = rng.uniform(0.0, 2.0 * np.pi, count)
    r = np.sqrt(rng.random(count)) * 0.15
    x = r * 16.0 * np.sin(t) ** 3
    y = r * (13.0 * np.cos(t) - 5.0 * np.cos(2 * t) - 2.0 * np.cos(3 * t) - np.cos(4 * t)) + 1.0
    z = rng.uniform(-1.0, 1.0, count) * r * 10.0
    return np.column_stack((x, y, z))


def _flower(count, rng):
    petals = 4
    angle = rng.uniform(0.0, 2.0 * np.pi, count)
    rad = np.cos(petals * angle) + 1.5
    dist = rng.random(count) * 2.0
    x = dist * rad * np.cos(angle)
    y = dist * rad * np.sin(angle)
    z = (rng.random(count) - 0.5) * 1.5 * (1.0 - dist / 2.0)  # thicker at the centre
    return np.column_stack((x, y, z))


def _saturn(count, rng):
    planet = int(count * 0.4)
    rings = count - planet
    angle = rng.uniform(0.0, 2.0 * np.pi, rings)
    dist = rng.uniform(2.2, 4.5, rings)
    ring_points = np.column_stack((
        dist * np.cos(angle),
        (rng.random(rings) - 0.5) * 0.1,
        dist * np.sin(angle),
    ))
    return np.vstack((_ball(planet, 1.5, rng), ring_points))


def _meditate(count, rng):
    """Seated figure: crossed-leg base, torso, head and halo."""
    roll = rng.random(count)
    out = np.zeros((count, 3))

    def disc_layer(mask, radius, y_low):
        n = int(mask.sum())
        r = radius * np.sqrt(rng.random(n))
        a = rng.uniform(0.0, 2.0 * np.pi, n)
        out[mask] = np.column_stack((r * np.cos(a), rng.random(n) * 2.0 + y_low, r * np.sin(a) * 0.8))

    disc_layer(roll < 0.4, 1.8, -2.5)
    disc_layer((roll >= 0.4) & (roll < 0.7), 1.2, -0.5)

    head = (roll >= 0.7) & (roll < 0.9)
    out[head] = _ball(int(head.sum()), 0.8, rng) + np.array([0.0, 2.0, 0.0])

    halo = roll >= 0.9
    n = int(halo.sum())
    a = rng.uniform(0.0, 2.0 * np.pi, n)
    dist = 2.5 + rng.random(n) * 0.2
    out[halo] = np.column_stack((dist * np.cos(a), dist * np.sin(a) + 2.0, (rng.random(n) - 0.5) * 0.1))
    return out


def _fireworks(count, rng):
    r = np.sqrt(rng.random(count)) * 4.0
    return _unit_directions(count, rng) * r[:, None]


def _dna(count, rng):
    i = np.arange(count)
    t = i * 0.05 * 0.5
    strand = np.where(i % 2 == 0, 0.0, np.pi)  # second strand half a turn behind
    radius = 1.5
    x = np.cos(t + strand) * radius + (rng.random(count) - 0.5) * 0.5
    z = np.sin(t + strand) * radius + (rng.random(count) - 0.5) * 0.5
    y = i / count * 10.0 - 5.0
    return np.column_stack((x, y, z))


def _galaxy(count, rng):
    arms = 3
    arm = rng.integers(0, arms, count)
    r = 4.5 * np.sqrt(rng.random(count))
    angle = arm * (2.0 * np.pi / arms) + r * 1.2 + rng.normal(0.0, 0.3, count) / (1.0 + r)
    spread = rng.normal(0.0, 0.12, (count, 2)) * (1.0 + r[:, None] * 0.1)
    x = r * np.cos(angle) + spread[:, 0]
    z = r * np.sin(angle) + spread[:, 1]
    y = rng.normal(0.0, 0.15, count) * (1.2 - r / 4.5)
    return np.column_stack((x, y, z))


def _tornado(count, rng):
    h = rng.random(count)
    radius = 0.3 + h * 2.5
    angle = rng.uniform(0.0, 2.0 * np.pi, count) + h * 6.0
    wobble = rng.normal(0.0, 0.08, count) * (1.0 + h)
    x = (radius + wobble) * np.cos(angle)
    z = (radius + wobble) * np.sin(angle)
    y = h * 8.0 - 4.0
    return np.column_stack((x, y, z))


def _lotus(count, rng):
    petals = 8
    layer = rng.integers(0, 3, count)
    angle = rng.uniform(0.0, 2.0 * np.pi, count) + layer * (np.pi / petals)
    envelope = np.abs(np.cos(petals / 2.0 * angle))
    rad = envelope * (1.2 + 0.9 * layer) * np.sqrt(rng.random(count))
    x = rad * np.cos(angle)
    z = rad * np.sin(angle)
    y = 0.35 * rad ** 2 / (1.0 + 0.5 * layer) - 1.0 + rng.normal(0.0, 0.04, count)
    return np.column_stack((x, y, z))


def _infinity(count, rng):
    t = rng.uniform(0.0, 2.0 * np.pi, count)
    denom = 1.0 + np.sin(t) ** 2
    a = 3.5
    x = a * np.cos(t) / denom
    y = a * np.sin(t) * np.cos(t) / denom
    tube = rng.normal(0.0, 0.15, (count, 3))
    return np.column_stack((x, y, np.zeros(count))) + tube


def _phoenix(count, rng):
    """Bird with raised wings and a trailing tail."""
    roll = rng.random(count)
    out = np.zeros((count, 3))

    body = roll < 0.25
    n = int(body.sum())
    out[body] = np.column_stack((
        rng.normal(0.0, 0.2, n),
        rng.uniform(-1.0, 1.8, n),
        rng.normal(0.0, 0.2, n),
    ))

    wings = (roll >= 0.25) & (roll < 0.8)
    n = int(wings.sum())
    s = rng.random(n)
    side = np.where(rng.random(n) < 0.5, -1.0, 1.0)
    out[wings] = np.column_stack((
        side * s * 4.0,
        0.5 + 1.6 * np.sin(s * np.pi * 0.8) - s * 0.6 + rng.normal(0.0, 0.15, n),
        rng.normal(0.0, 0.25, n) * (1.0 - s * 0.5),
    ))

    tail = roll >= 0.8
    n = int(tail.sum())
    s = rng.random(n)
    out[tail] = np.column_stack((
        rng.normal(0.0, 0.15 + s * 0.8, n),
        -1.0 - s * 3.0,
        rng.normal(0.0, 0.15, n) - s * 0.5,
    ))
    return out


def _wave(count, rng):
    x = rng.uniform(-4.0, 4.0, count)
    z = rng.uniform(-4.0, 4.0, count)
    y = np.sin(x * 1.2) * np.cos(z * 1.2) * 0.8 + rng.normal(0.0, 0.03, count)
    return np.column_stack((x, y, z))


SAMPLERS: Dict[ShapeType, Sampler] = {
    ShapeType.SPHERE: _sphere,
    ShapeType.HEART: _heart,
    ShapeType.FLOWER: _flower,
    ShapeType.SATURN: _saturn,
    ShapeType.MEDITATE: _meditate,
    ShapeType.FIREWORKS: _fireworks,
    ShapeType.DNA: _dna,
    ShapeType.GALAXY: _galaxy,
    ShapeType.TORNADO: _tornado,
    ShapeType.LOTUS: _lotus,
    ShapeType.INFINITY: _infinity,
    ShapeType.PHOENIX: _phoenix,
    ShapeType.WAVE: _wave,
}


def generate(shape: ShapeType, count: int, rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """
    Sample a target cloud for ``shape``.

    Args:
        shape: Shape to sample
        count: Number of particles
        rng: Optional generator; a fresh unseeded one is used when omitted

    Returns:
        float32 array of length ``count * 3``
    """
    if count <= 0:
        raise ValueError(f"Particle count must be positive, got {count}")
    sampler = SAMPLERS[shape]
    points = sampler(count, rng if rng is not None else np.random.default_rng())
    return np.ascontiguousarray(points, dtype=np.float32).reshape(-1)
