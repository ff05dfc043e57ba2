"""Run the olm-bundle command line tool with `python -m olm_bundle`."""

from olm_bundle.tool.olm_bundle import main

if __name__ == "__main__":
    main()
