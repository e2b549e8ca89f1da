"""Static Nix templates seeded into the configuration root."""

from __future__ import annotations

# Rewritten on every run so guests always share the launcher's expectations.
BASE_NIX = """\
{ pkgs, lib, ... }:

{
  imports = [
    <nixpkgs/nixos/modules/virtualisation/qemu-vm.nix>
    ./local.nix
  ];

  boot.kernelParams = [ "console=ttyS0" ];

  # /home/user is the per-application shared directory on the host
  fileSystems."/home/user" = {
    device = "home";
    fsType = "9p";
    options = [ "trans=virtio" "version=9p2000.L" "msize=262144" "cache=loose" ];
    neededForBoot = false;
  };

  users.users.user = {
    isNormalUser = true;
    uid = 1000;
    extraGroups = [ "audio" "video" ];
  };

  services.spice-vdagentd.enable = true;
  services.qemuGuest.enable = true;

  services.xserver = {
    enable = true;
    displayManager.lightdm.enable = true;
    displayManager.autoLogin = {
      enable = true;
      user = "user";
    };
    windowManager.xmonad.enable = true;
  };

  # Memory telemetry consumed by `appvm autoballoon`
  systemd.services.appvm-memory-used = {
    wantedBy = [ "multi-user.target" ];
    serviceConfig.Restart = "always";
    path = [ pkgs.procps pkgs.gawk pkgs.coreutils ];
    script = ''
      while true; do
        free -m | awk '/^Mem:/ { print $3 }' > /home/user/.memory_used.tmp
        mv /home/user/.memory_used.tmp /home/user/.memory_used
        sleep 1
      done
    '';
  };

  virtualisation.graphics = true;
  virtualisation.writableStore = false;
}
"""

# Seeded once; user edits survive later runs.
LOCAL_NIX = """\
{ pkgs, ... }:

{
  # Local overrides applied to every application VM.
  time.timeZone = "UTC";
  i18n.defaultLocale = "en_US.UTF-8";
}
"""
