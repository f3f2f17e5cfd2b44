"""Portal dialogs and flows, independent of any rendering layer."""
