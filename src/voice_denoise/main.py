"""Command-line interface for the noise suppression test harness."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from .noise_suppression.analysis import format_db
from .noise_suppression.audio_capture import AudioCapture, list_input_devices
from .noise_suppression.config import DEFAULT_RECORD_DURATION, EXPORT_DIR
from .noise_suppression.exceptions import NoiseSuppressionError
from .noise_suppression.harness import NoiseTestHarness
from .noise_suppression.models import BackendConfig, BackendKind, EffectSettings, Metrics
from .noise_suppression.settings_store import JsonSettingsStore
from .noise_suppression.wav_export import read_wav

BACKEND_CHOICES = ["off"] + [kind.value for kind in BackendKind]


class HarnessCLI:
    """Records or loads a clip, processes it and reports the comparison."""

    def __init__(
        self,
        harness: NoiseTestHarness,
        export_dir: Optional[Path] = None,
        sample_format: str = "int16",
        play_ab: bool = False,
    ) -> None:
        self._harness = harness
        self._export_dir = export_dir
        self._sample_format = sample_format
        self._play_ab = play_ab

    async def run(self, duration: float, input_path: Optional[str] = None) -> int:
        """
        Record or load a clip, process it and report the comparison.

        Args:
            duration: Seconds to record when no input file is given
            input_path: WAV file to process instead of the microphone

        Returns:
            Process exit code
        """
        try:
            if input_path:
                print(f"📂 Loading {input_path}")
                result = await self._harness.load(read_wav(input_path))
            else:
                print(f"🎤 Recording {duration:.1f}s, speak now...")
                result = await self._harness.record(duration)

            print_comparison(result.raw_metrics, result.processed_metrics)
            if result.regions:
                spans = ", ".join(f"{r.start:.2f}-{r.end:.2f}s" for r in result.regions)
                print(f"🗣️  Speech: {spans}")

            for entry in reversed(self._harness.diagnostics.entries):
                logging.debug(entry)

            if self._export_dir is not None:
                for which in ("raw", "processed"):
                    path = self._harness.export(
                        which, sample_format=self._sample_format, directory=self._export_dir
                    )
                    print(f"💾 {which}: {path}")

            if self._play_ab:
                print("🔈 Playing raw, then processed...")
                await self._harness.play_ab()
            return 0

        except (NoiseSuppressionError, ValueError, OSError) as e:
            print(f"❌ {e}")
            return 1
        except (KeyboardInterrupt, asyncio.CancelledError):
            self._harness.stop_playback()
            print("\n👋 Goodbye!")
            return 0
        finally:
            await self._harness.close()


def print_comparison(raw: Metrics, processed: Metrics) -> None:
    """Print raw and processed metrics side by side."""
    rows = [
        ("RMS (dB)", raw.rms_db, processed.rms_db),
        ("Peak (dB)", raw.peak_db, processed.peak_db),
        ("Crest (dB)", raw.crest_factor_db, processed.crest_factor_db),
        ("SNR (dB)", raw.snr_db, processed.snr_db),
    ]
    print(f"{'':12}{'raw':>10}{'processed':>12}")
    for label, before, after in rows:
        print(f"{label:12}{format_db(before):>10}{format_db(after):>12}")


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        description="Voice Denoise CLI - Compare raw and noise-suppressed microphone audio",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  voice-denoise                                  # Record 5s with saved settings
  voice-denoise --backend deepfilter --level 20  # Deep filtering, 20 dB limit
  voice-denoise --backend spectral --strength 0.5
  voice-denoise --input noisy.wav --vad          # Process a file with speech gating
  voice-denoise --export-dir recordings --play-ab
  voice-denoise --list-devices
        """,
    )

    parser.add_argument("--duration", "-d", type=float, default=DEFAULT_RECORD_DURATION,
                        help="Recording length in seconds (3-10)")
    parser.add_argument("--input", "-i", type=str, default=None, metavar="WAV",
                        help="Process a WAV file instead of recording")
    parser.add_argument("--device", type=int, default=None,
                        help="Input device index (see --list-devices)")
    parser.add_argument("--backend", "-b", choices=BACKEND_CHOICES, default=None,
                        help="Suppression backend (default: saved setting)")
    parser.add_argument("--level", type=float, default=None,
                        help="Deep filtering attenuation limit in dB")
    parser.add_argument("--strength", type=float, default=None,
                        help="Dry/wet mix, 0 (raw) to 1 (fully processed)")
    parser.add_argument("--pre-gain", type=float, default=None,
                        help="Gain applied before suppression")
    parser.add_argument("--vad", action="store_true", help="Gate non-speech to silence")
    parser.add_argument("--vad-sensitivity", type=float, default=None,
                        help="Speech gate sensitivity, 0 to 1")
    parser.add_argument("--model-dir", type=str, default=None,
                        help="Directory holding the DTLN ONNX models")
    parser.add_argument("--export-dir", type=str, default=None, metavar="PATH",
                        help=f"Write raw and processed WAVs here (e.g. {EXPORT_DIR})")
    parser.add_argument("--format", choices=["int16", "float32"], default="int16",
                        help="Exported sample format")
    parser.add_argument("--play-ab", action="store_true",
                        help="Play raw then processed audio")
    parser.add_argument("--save-settings", action="store_true",
                        help="Remember the effect settings given on the command line")
    parser.add_argument("--reset-settings", action="store_true",
                        help="Forget saved effect settings")
    parser.add_argument("--list-devices", action="store_true",
                        help="List audio input devices and exit")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable verbose logging and debug information")
    parser.add_argument("--trace", action="store_true",
                        help="Enable trace logging (most verbose)")

    return parser


def settings_from_args(args: argparse.Namespace, base: EffectSettings) -> EffectSettings:
    """
    Overlay command-line options on saved settings.

    Args:
        args: Parsed arguments; options left unset keep the saved value
        base: Settings loaded from the store

    Returns:
        Merged settings
    """
    changes = {}
    if args.backend is not None:
        changes["backend"] = None if args.backend == "off" else BackendKind(args.backend)
    if args.level is not None:
        changes["deepfilter_level"] = args.level
    if args.strength is not None:
        changes["strength"] = args.strength
    if args.pre_gain is not None:
        changes["pre_gain"] = args.pre_gain
    if args.vad:
        changes["vad_enabled"] = True
    if args.vad_sensitivity is not None:
        changes["vad_sensitivity"] = args.vad_sensitivity
    return base.replace(**changes)


def handle_arguments(args: argparse.Namespace) -> tuple[bool, bool]:
    """
    Handle parsed command-line arguments.

    Args:
        args: Parsed arguments from argparse

    Returns:
        Tuple of (success, should_continue)
    """
    from .noise_suppression.logging_utils import TRACE_LEVEL, add_trace_level

    add_trace_level()

    if args.trace:
        logging.basicConfig(
            level=TRACE_LEVEL,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
    elif args.verbose:
        logging.basicConfig(
            level="DEBUG", format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
    else:
        logging.basicConfig(level="INFO", format="%(asctime)s - %(levelname)s - %(message)s")

    if args.list_devices:
        try:
            devices = list_input_devices()
        except Exception as e:
            print(f"❌ Error listing devices: {e}")
            return False, False
        for device in devices:
            print(f"[{device['index']}] {device['name']} "
                  f"({device['channels']} ch, {device['sample_rate']:.0f} Hz)")
        if not devices:
            print("⚠️ No input devices found")
        return True, False

    if args.reset_settings:
        store = JsonSettingsStore()
        try:
            if store.settings_file.exists():
                store.settings_file.unlink()
            print("✅ Saved settings cleared.")
        except OSError as e:
            print(f"❌ Error clearing settings: {e}")
            return False, False
        return True, False

    return True, True


def cli_entry_with_args() -> None:
    """CLI entry point with argument parsing."""
    parser = create_argument_parser()

    try:
        args = parser.parse_args()
        success, should_continue = handle_arguments(args)
        if not success:
            sys.exit(1)
        if not should_continue:
            sys.exit(0)

        store = JsonSettingsStore()
        settings = settings_from_args(args, store.load())
        if args.save_settings:
            store.save(settings)

        harness = NoiseTestHarness(
            capture=AudioCapture(device_index=args.device),
            backend_config=BackendConfig(attenuation_db=settings.deepfilter_level,
                                         model_dir=args.model_dir),
            settings=settings,
        )
        cli = HarnessCLI(
            harness,
            export_dir=Path(args.export_dir) if args.export_dir else None,
            sample_format=args.format,
            play_ab=args.play_ab,
        )
        sys.exit(asyncio.run(cli.run(args.duration, args.input)))

    except KeyboardInterrupt:
        pass
    except SystemExit:
        raise
    except Exception:
        sys.exit(1)


if __name__ == "__main__":
    cli_entry_with_args()
