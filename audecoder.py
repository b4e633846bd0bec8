#!/usr/bin/env python3
"""
audecoder.py — Audecode CLI entry point.

Commands:
  encode   <audio>   Obfuscate audio → "<name> - audecode.wav" (+ .mp3)
  decode   <audio>   Run the notch-cascade decoder offline → WAV
  filters            Print the decoder's notch table
  info     <wav>     Print a WAV header

Run `python3 audecoder.py --help` for full usage.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import re
import sys
from pathlib import Path


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _song_name(path: str) -> str:
    """File stem with bracket/paren characters stripped (fallback 'audecode')."""
    stem = Path(path).stem if path else ''
    stem = re.sub(r'[\[\]()]', '', stem).strip()
    return stem or 'audecode'


def _default_output(src: str, ext: str) -> str:
    return str(Path(src).with_name(f'{_song_name(src)} - audecode{ext}'))


def _print_progress(label: str):
    def report(pct: float) -> None:
        print(f'\r  {label}  ({pct:.0f}%)', end='', flush=True, file=sys.stderr)
    return report


# ─────────────────────────────────────────────────────────────────────────────
# Sub-command handlers
# ─────────────────────────────────────────────────────────────────────────────

def cmd_encode(args: argparse.Namespace):
    from audecode import CompressedEncodeFailure, EncodeSettings, amplification_for
    from audecode.encoder import encode_file
    from audecode.mp3 import check_ffmpeg

    settings = EncodeSettings(
        base_frequency_hz=args.base_freq,
        amplitude=args.amplitude,
        source_volume=args.source_volume,
    )
    wav_out = args.output or _default_output(args.input, '.wav')
    mp3_out = args.mp3 or _default_output(args.input, '.mp3')

    want_mp3 = not args.no_mp3
    if want_mp3 and not check_ffmpeg():
        print('⚠ ffmpeg not found — skipping MP3 (install from https://ffmpeg.org)',
              file=sys.stderr)
        want_mp3 = False

    print(f'→ Encoding {args.input}  tones={settings.freq1:.0f}Hz,{settings.freq2:.0f}Hz  '
          f'amplitude={settings.amplitude}  source_volume={settings.source_volume}',
          file=sys.stderr)

    mp3_error = None
    try:
        result = asyncio.run(encode_file(
            args.input, settings,
            progress=_print_progress('encoding'),
            compressed=want_mp3,
            bitrate_kbps=args.bitrate,
        ))
    except CompressedEncodeFailure as e:
        if e.result is None:
            raise
        result, mp3_error = e.result, e
    print(file=sys.stderr)  # newline after progress

    Path(wav_out).write_bytes(result.uncompressed_container_bytes)
    print(f'✓ Saved: {wav_out}  ({result.duration_s:.2f}s  '
          f'{len(result.uncompressed_container_bytes) / 1024:.1f} KB)')

    if result.compressed_container_bytes is not None:
        Path(mp3_out).write_bytes(result.compressed_container_bytes)
        print(f'✓ Saved: {mp3_out}  ({len(result.compressed_container_bytes) / 1024:.1f} KB)')

    gain = amplification_for(settings.source_volume)
    print(f'ℹ  Decoder amplification needed: {gain}×', file=sys.stderr)

    if mp3_error is not None:
        raise mp3_error


def cmd_decode(args: argparse.Namespace):
    import soundfile as sf
    from audecode.decoder import decode_file

    out = args.output or str(Path(args.input).with_name(f'{_song_name(args.input)} - decoded.wav'))
    print(f'→ Decoding {args.input}', file=sys.stderr)
    samples, sr = asyncio.run(decode_file(args.input))
    if args.normalize and len(samples):
        peak = float(abs(samples).max())
        if peak > 1.0:
            samples = samples / peak
    sf.write(out, samples, sr, subtype='PCM_16')
    print(f'✓ Saved: {out}  ({len(samples) / sr:.2f}s)')


def cmd_filters(args: argparse.Namespace):
    from audecode.profiles import FILTER_SPECS, OUTPUT_GAIN

    print(f'  {"#":>2}  {"Freq (Hz)":>9}  {"Q":>6}  {"Gain (dB)":>9}')
    print(f'  {"-"*2}  {"-"*9}  {"-"*6}  {"-"*9}')
    for i, spec in enumerate(FILTER_SPECS):
        print(f'  {i:>2}  {spec.frequency_hz:>9.0f}  {spec.q_factor:>6.1f}  {spec.gain_db:>9.0f}')
    print(f'\n  output gain: {OUTPUT_GAIN:g}×')


def cmd_info(args: argparse.Namespace):
    from audecode.container import parse_wav_header

    with open(args.input, 'rb') as f:
        header = parse_wav_header(f.read(44))
    print(f'  channels:    {header.channels}')
    print(f'  sample rate: {header.sample_rate} Hz')
    print(f'  byte rate:   {header.byte_rate}')
    print(f'  block align: {header.block_align}')
    print(f'  data size:   {header.data_size} bytes ({header.n_frames} frames)')


# ─────────────────────────────────────────────────────────────────────────────
# Argument parser
# ─────────────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    from audecode.profiles import (
        DEFAULT_AMPLITUDE, DEFAULT_BASE_FREQUENCY, DEFAULT_SOURCE_VOLUME,
        MP3_BITRATE_KBPS,
    )

    p = argparse.ArgumentParser(
        prog='audecoder',
        description='Audecode — tone-injection audio obfuscation encoder/decoder.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 audecoder.py encode song.flac                      # → "song - audecode.wav" + .mp3
  python3 audecoder.py encode song.wav --no-mp3 --source-volume 0.05
  python3 audecoder.py decode "song - audecode.wav" -o restored.wav
  python3 audecoder.py filters
  python3 audecoder.py info "song - audecode.wav"
""",
    )
    p.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging.')
    sub = p.add_subparsers(dest='command', required=True)

    # ── encode ────────────────────────────────────────────────────────────────
    enc = sub.add_parser('encode', help='Obfuscate an audio file.')
    enc.add_argument('input', help='Source audio (any format soundfile can read)')
    enc.add_argument('--output', '-o', default=None,
                     help='WAV output path (default: "<name> - audecode.wav")')
    enc.add_argument('--mp3', default=None,
                     help='MP3 output path (default: "<name> - audecode.mp3")')
    enc.add_argument('--no-mp3', action='store_true', help='Skip the MP3 container.')
    enc.add_argument('--base-freq', type=float, default=DEFAULT_BASE_FREQUENCY,
                     metavar='HZ', help=f'Base frequency (default: {DEFAULT_BASE_FREQUENCY:g})')
    enc.add_argument('--amplitude', type=float, default=DEFAULT_AMPLITUDE,
                     metavar='0-1', help=f'Tone amplitude (default: {DEFAULT_AMPLITUDE:g})')
    enc.add_argument('--source-volume', type=float, default=DEFAULT_SOURCE_VOLUME,
                     metavar='0-1', help=f'Original level (default: {DEFAULT_SOURCE_VOLUME:g})')
    enc.add_argument('--bitrate', type=int, default=MP3_BITRATE_KBPS,
                     metavar='KBPS', help=f'MP3 bitrate (default: {MP3_BITRATE_KBPS})')
    enc.set_defaults(func=cmd_encode)

    # ── decode ────────────────────────────────────────────────────────────────
    dec = sub.add_parser('decode', help='Decode an obfuscated file offline.')
    dec.add_argument('input', help='Encoded audio')
    dec.add_argument('--output', '-o', default=None,
                     help='Output WAV (default: "<name> - decoded.wav")')
    dec.add_argument('--normalize', action='store_true',
                     help='Scale down if the fixed ×100 gain clips.')
    dec.set_defaults(func=cmd_decode)

    # ── filters ───────────────────────────────────────────────────────────────
    flt = sub.add_parser('filters', help='Print the notch cascade table.')
    flt.set_defaults(func=cmd_filters)

    # ── info ──────────────────────────────────────────────────────────────────
    inf = sub.add_parser('info', help='Print a WAV header.')
    inf.add_argument('input', help='WAV file')
    inf.set_defaults(func=cmd_info)

    return p


def main():
    parser = build_parser()
    args   = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    try:
        args.func(args)
    except KeyboardInterrupt:
        print('\n⚠ Interrupted.', file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        print(f'✗ Error: {e}', file=sys.stderr)
        if os.environ.get('AUDECODE_DEBUG'):
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
